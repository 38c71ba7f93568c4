"""Request handlers for the static site and the JSON API."""
