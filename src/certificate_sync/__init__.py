"""certificate-sync: keep credential store identities, ACLs and files in sync."""
__version__ = "0.1.0"
