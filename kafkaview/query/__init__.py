"""Query specifications, templates, filters and entity search predicates."""
