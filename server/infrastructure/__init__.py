"""CDK stack declarations for the Music Store deployment."""
