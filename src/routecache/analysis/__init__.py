"""
Static Analysis Package.

This package contains the passes that read a TypeScript project, index its
declarations and classify every registered route as cacheable or not.

Modules:
    - ``loader``: Entry discovery, parsing and module resolution.
    - ``symbol_table``: Scopes, bindings and cross-module resolution.
    - ``router_graph``: Root router discovery and mount traversal.
    - ``purity``: Handler / middleware classification.
    - ``static_values``: Proving expressions constant at deploy time.
    - ``aggregate``: Collecting and ordering the route report.
"""
