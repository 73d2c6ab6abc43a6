"""In-memory fakes for the installer's network collaborators."""
