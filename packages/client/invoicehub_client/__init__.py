"""Invoice Hub API client."""
