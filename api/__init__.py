"""HTTP API blueprints for kerrp2p."""
