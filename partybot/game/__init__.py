"""Party roster model, run templates and the party lifecycle service."""
