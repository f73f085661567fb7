from .app import create_scrape_app, create_sd_app, find_external_addr, sd_targets, serve_in_thread

__all__ = ["create_scrape_app", "create_sd_app", "find_external_addr", "sd_targets", "serve_in_thread"]
