"""Gateway-side integration: openclaw.json, migration, channel tokens."""
