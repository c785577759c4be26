"""Knowledge store for notes, projects and agent profiles."""
