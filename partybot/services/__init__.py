"""Supporting services for the party lifecycle: per-party locking and expiry timers."""
