"""Vault sidecar: decrypt secrets, render the proxy config, exec the proxy."""
