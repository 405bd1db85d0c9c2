"""taskspine core: errors, logging, settings and the scheduler."""
