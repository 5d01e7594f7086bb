"""FeedAlert - live feed streaming and relevance-gated push notifications."""
