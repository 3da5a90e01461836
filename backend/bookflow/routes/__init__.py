"""HTTP routes for the Bookflow API."""
