"""Configuration, HTTP client, health and clock helpers shared across kiosk_lite."""
