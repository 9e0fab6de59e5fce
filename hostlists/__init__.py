"""
hostlists package - Hostlists Registry Builder

Modules:
    revision: Content-hash revision tracking
    metadata: Hostlist metadata aggregation (filters.json, filters-dev.json)
    locales: Translation fragment folding (filters_i18n.json)
    services: Service source/distribution reconciliation
    grouping: Category/group nesting of services (services.json)
    icons: Service icon validation
    compiler: Hostlist compile collaborators
    cleaner: Rule cleaning for the local compiler
    mastodon: Dynamic Mastodon server list
    translations: Base-locale translation preparation
    pipeline: Main build pipeline
"""

__version__ = "1.0.0"
