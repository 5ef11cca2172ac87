"""Support chat backend: transcript store, reply providers, chat orchestration."""
