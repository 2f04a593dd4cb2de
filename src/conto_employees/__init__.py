"""Staff terminal API for table billing."""
