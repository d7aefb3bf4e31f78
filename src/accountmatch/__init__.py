"""Account deduplication across a source feed and two reference systems."""
