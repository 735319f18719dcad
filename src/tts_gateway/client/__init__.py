"""Terminal client: local state, action handlers and the `tts-gateway` CLI."""
