"""Terminal-side components: transport, local store, sync and CLI."""
