"""Client meeting: search-and-select session and playlist export."""
