"""HTTP request handlers for uploadgate."""
