"""MPRIS side of the bridge: mirrored state, controllers and the proxy player."""
