"""Remote command/notification channels."""
