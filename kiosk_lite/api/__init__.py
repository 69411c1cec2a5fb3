"""aiohttp server, routes and middleware for kiosk_lite."""
