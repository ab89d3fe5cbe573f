"""Settings loading for the surveillance engine."""
