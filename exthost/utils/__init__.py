"""Small shared helpers: version ranges, lenient JSON, bounded concurrency."""
