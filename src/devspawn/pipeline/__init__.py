"""Provisioning pipeline: setup steps, local install and orchestration."""
