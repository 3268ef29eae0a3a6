"""clawvault — age-encrypted credential vault and proxy sidecar for OpenClaw."""

__version__ = "0.1.0"
