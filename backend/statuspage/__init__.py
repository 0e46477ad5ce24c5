"""StatusPage - service status checks and incident tracking."""
