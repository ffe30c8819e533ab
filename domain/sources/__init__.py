"""Sources Bounded Context.

Responsible for broadcast source records and their DTS groups:
- Value Objects: SourceIdentity, GeoPoint, Service, Country, AntennaPattern
- Entities: Source, with DTSMembers for a DTS parent
- Derivation: create_source, make_source, derive_source, replicate
- Persistence: save_source, load_source, delete_source against a SourceStore
"""
