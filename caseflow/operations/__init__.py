"""Side-effecting integrations: outbound notifications."""
