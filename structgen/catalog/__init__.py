"""Provider/model catalog package.

Module split:
    - `types`: Frozen provider/model descriptors and catalog snapshots.
    - `registry`: Catalog sources and the reloadable `ProviderRegistry`.
    - `credentials`: Call-time secret resolution.
"""
