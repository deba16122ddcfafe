"""HTTP and agent-to-agent surface."""
