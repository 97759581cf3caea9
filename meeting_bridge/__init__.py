"""Meeting copilot bridge: meeting-bot transcript webhooks -> assistant gateway reactions."""
