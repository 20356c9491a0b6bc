"""Video relay service: multi-provider metadata resolution and media stream relay."""
