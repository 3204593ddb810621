"""Music Store identity and data-access layer."""
