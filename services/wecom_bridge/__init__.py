"""WeCom callback bridge: verify, decrypt and forward WeCom push events."""
