"""Search providers — where candidate files come from."""

from keyscout.search.github import GitHubSearchProvider, parse_search_item

__all__ = ["GitHubSearchProvider", "parse_search_item"]
