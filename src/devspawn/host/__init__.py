"""Host inspection: environment detection, resource allocation and templates."""
