"""Sources Bounded Context - Record Factories and Derivation.

Every way a Source comes into existence other than loading from the store:
fresh creation, building from an external primary record, DTS member
creation, derivation under a new identity and replication onto a new
channel. Each operation either returns a complete, sealed record or raises;
a failure is also reported to the optional error collector.
"""

from __future__ import annotations

import logging

from domain.sources import catalog
from domain.sources.attributes import ATTR_IS_BASELINE, Attributes
from domain.sources.entities import DISPLAY_FIELD_NAMES, FIELD_NAMES, Source
from domain.sources.errors import (
    ErrorCollector,
    IllegalOperationError,
    KeyExhaustionError,
    ValidationError,
)
from domain.sources.keys import KeyGenerator, temporary_keys
from domain.sources.patterns import PatternKind
from domain.sources.study import ImportSet, StudyContext
from domain.sources.value_objects import (
    CHANNEL_MAX,
    CHANNEL_MIN,
    CONTOUR_LEVEL_DEFAULT,
    ERP_DEF,
    HEIGHT_DERIVE,
    Country,
    EmissionMask,
    ExternalRecord,
    FrequencyOffset,
    Service,
    ServiceAreaMode,
    SignalType,
    SourceIdentity,
    SourceRole,
)

logger = logging.getLogger(__name__)

# Placeholder ERP for a synthesized reference facility, kW
REFERENCE_FACILITY_ERP = 1.0


class _Same:
    def __repr__(self) -> str:
        return "SAME"


# Marks "keep the source's study" in derive_source, where None means no study
SAME = _Same()


def _report(errors: ErrorCollector | None, message: str) -> None:
    if errors is not None:
        errors.report_error(message)


def _refuse(errors: ErrorCollector | None, message: str) -> IllegalOperationError:
    _report(errors, message)
    return IllegalOperationError(message)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def _next_key(
    key_generator: KeyGenerator | None, errors: ErrorCollector | None
) -> int:
    if key_generator is None:
        return temporary_keys.next_key()
    key = key_generator.next_key()
    if key is None:
        message = "No keys available, cannot create a new source"
        _report(errors, message)
        raise KeyExhaustionError(message)
    return key


def _new_source(
    study: StudyContext | None,
    facility_id: int,
    service: Service,
    country: Country,
    locked: bool,
    *,
    key_generator: KeyGenerator | None = None,
    is_drt: bool = False,
    user_record_id: int | None = None,
    ext_db_key: int | None = None,
    ext_record_id: str | None = None,
    original_source_key: int | None = None,
    parent_source_key: int | None = None,
    errors: ErrorCollector | None = None,
) -> Source:
    """Unsealed record with a fresh key and default field values."""
    if key_generator is None and study is not None:
        key_generator = study.key_generator
    key = _next_key(key_generator, errors)
    identity = SourceIdentity(
        key=key,
        db_id=study.db_id if study is not None else None,
        facility_id=facility_id,
        service=service,
        country=country,
        locked=locked,
        is_drt=is_drt,
        user_record_id=user_record_id,
        ext_db_key=ext_db_key,
        ext_record_id=ext_record_id,
        original_source_key=original_source_key,
        parent_source_key=parent_source_key,
        is_parent=service.is_dts and parent_source_key is None,
    )
    logger.debug("Allocated source key %d (%s)", key, service.code)
    return Source(identity, study)


def create_source(
    study: StudyContext | None,
    facility_id: int,
    service: Service,
    country: Country,
    locked: bool = False,
    *,
    is_drt: bool = False,
    user_record_id: int | None = None,
    ext_db_key: int | None = None,
    ext_record_id: str | None = None,
    errors: ErrorCollector | None = None,
) -> Source:
    """Create a new record with default field values.

    The key comes from the study's generator, or from the process-wide
    temporary generator when there is no study. A DTS service yields an
    empty group parent.

    Raises:
        KeyExhaustionError: The study has no free keys left.
    """
    source = _new_source(
        study,
        facility_id,
        service,
        country,
        locked,
        is_drt=is_drt,
        user_record_id=user_record_id,
        ext_db_key=ext_db_key,
        ext_record_id=ext_record_id,
        errors=errors,
    )
    source.seal()
    return source


def create_ext_source(
    import_set: ImportSet,
    facility_id: int,
    service: Service,
    country: Country,
    fields: dict | None = None,
    *,
    is_drt: bool = False,
    errors: ErrorCollector | None = None,
) -> Source:
    """Create a locked record in a standalone import set.

    The record's own key doubles as its external record id.
    """
    key = _next_key(import_set.key_generator, errors)
    identity = SourceIdentity(
        key=key,
        facility_id=facility_id,
        service=service,
        country=country,
        locked=True,
        is_drt=is_drt,
        ext_db_key=import_set.ext_db_key,
        ext_record_id=str(key),
        is_parent=service.is_dts,
    )
    source = Source(identity)
    if fields and not source.populate(fields, errors):
        raise ValidationError([f"Bad field data for import record {key}"])
    source.seal()
    return source


def make_source(
    record: ExternalRecord,
    study: StudyContext | None,
    locked: bool = True,
    errors: ErrorCollector | None = None,
) -> Source:
    """Build a record mirroring an external primary data record.

    For a DTS record every member record becomes a site of the new group;
    when the data set carries no reference facility a placeholder one is
    synthesized at the parent's location.
    """
    service = _lookup_service(record.service_code, errors)
    country = _lookup_country(record.country_code, errors)
    source = _new_source(
        study,
        record.facility_id,
        service,
        country,
        locked,
        is_drt=record.is_drt,
        ext_db_key=record.ext_db_key,
        ext_record_id=record.ext_record_id,
        errors=errors,
    )
    _fill_from_record(source, record, errors)

    if source.is_parent:
        for member_record in record.dts_records:
            member_service = _lookup_service(member_record.service_code, errors)
            member = _new_source(
                study,
                record.facility_id,
                member_service,
                country,
                locked,
                is_drt=member_record.is_drt,
                ext_db_key=member_record.ext_db_key,
                ext_record_id=member_record.ext_record_id,
                parent_source_key=source.key,
                errors=errors,
            )
            _fill_from_record(member, member_record, errors)
            member.seal()
            source.add_or_replace_dts_source(member)
        if source.dts_members.reference_facility() is None:
            _attach_reference_facility(source, errors)
    elif record.dts_records:
        logger.warning(
            "Ignoring %d DTS records on non-DTS record %s",
            len(record.dts_records),
            record.ext_record_id,
        )

    source.seal()
    logger.info(
        "Made source %d from external record %s", source.key, record.ext_record_id
    )
    return source


def _lookup_service(code: str, errors: ErrorCollector | None) -> Service:
    service = catalog.get_service(code)
    if service is None:
        message = f"Unknown service code {code!r}"
        _report(errors, message)
        raise ValidationError([message])
    return service


def _lookup_country(code: str, errors: ErrorCollector | None) -> Country:
    country = catalog.get_country(code)
    if country is None:
        message = f"Unknown country code {code!r}"
        _report(errors, message)
        raise ValidationError([message])
    return country


def _fill_from_record(
    source: Source, record: ExternalRecord, errors: ErrorCollector | None
) -> None:
    if not source.populate(dict(record.fields), errors):
        raise ValidationError([f"Bad field data in record {record.ext_record_id}"])
    source.replace_attributes(Attributes(dict(record.attributes)))


# ---------------------------------------------------------------------------
# DTS members
# ---------------------------------------------------------------------------
def _build_dts_member(
    parent: Source, site_number: int, service: Service | None, errors
) -> Source:
    if site_number == 0:
        member = _new_source(
            parent.study,
            parent.facility_id,
            catalog.default_dts_member_service(service),
            parent.country,
            parent.locked,
            is_drt=parent.is_drt,
            parent_source_key=parent.key,
            errors=errors,
        )
        member.service_area_mode = ServiceAreaMode.CONTOUR_FCC
        member.service_area_cl = CONTOUR_LEVEL_DEFAULT
    else:
        member = _new_source(
            parent.study,
            parent.facility_id,
            service or parent.service,
            parent.country,
            parent.locked,
            is_drt=parent.is_drt,
            user_record_id=parent.user_record_id,
            ext_db_key=parent.ext_db_key,
            ext_record_id=parent.ext_record_id,
            parent_source_key=parent.key,
            errors=errors,
        )
        member.channel = parent.channel
        member.zone = parent.zone
        member.status = parent.status
        member.file_number = parent.file_number
        member.signal_type = parent.signal_type
    member.call_sign = parent.call_sign
    member.city = parent.city
    member.state = parent.state
    member.site_number = site_number
    return member


def create_dts_source(
    parent: Source,
    site_number: int,
    service: Service | None = None,
    errors: ErrorCollector | None = None,
) -> Source:
    """Create (but do not add) a new member record for a DTS parent.

    Site 0 is the reference facility: it gets a non-DTS service and no
    primary record references. Other sites share the parent's service,
    primary references and channel assignment details.

    Raises:
        IllegalOperationError: Parent is not an editable DTS parent, or a
            second reference facility was requested.
    """
    if not parent.is_parent:
        raise _refuse(errors, f"Source {parent.key} is not a DTS parent")
    if parent.locked:
        raise _refuse(errors, f"Cannot add sites to locked DTS parent {parent.key}")
    if site_number < 0:
        raise _refuse(errors, f"Bad site number {site_number}")
    if site_number == 0 and parent.dts_members.reference_facility() is not None:
        raise _refuse(
            errors, f"DTS parent {parent.key} already has a reference facility"
        )
    member = _build_dts_member(parent, site_number, service, errors)
    member.seal()
    return member


def _attach_reference_facility(parent: Source, errors) -> Source:
    member = _build_dts_member(parent, 0, None, errors)
    member.channel = parent.channel
    member.location = parent.location
    member.height_amsl = HEIGHT_DERIVE
    member.overall_haat = HEIGHT_DERIVE
    member.peak_erp = REFERENCE_FACILITY_ERP
    member.seal()
    parent.dts_members.add_or_replace(member)
    return member


def add_dts_reference_source(
    parent: Source, errors: ErrorCollector | None = None
) -> Source:
    """Add a placeholder reference facility at the parent's location.

    Used when a DTS operation arrives without one. Heights are left for the
    study engine to derive.
    """
    if not parent.is_parent:
        raise _refuse(errors, f"Source {parent.key} is not a DTS parent")
    if parent.locked:
        raise _refuse(errors, f"Cannot add sites to locked DTS parent {parent.key}")
    if parent.dts_members.reference_facility() is not None:
        raise _refuse(
            errors, f"DTS parent {parent.key} already has a reference facility"
        )
    return _attach_reference_facility(parent, errors)


# ---------------------------------------------------------------------------
# Field copy
# ---------------------------------------------------------------------------
def _copy_fields(
    source: Source, target: Source, *, patterns: bool = True, same_study: bool = True
) -> None:
    for name in FIELD_NAMES:
        if not name.startswith("has_"):
            setattr(target, name, getattr(source, name))
    if patterns:
        for kind in PatternKind:
            pattern = source.get_pattern(kind)
            if pattern is None and getattr(source, f"has_{kind.value}_pattern"):
                logger.warning(
                    "Source %d has a %s pattern that could not be loaded",
                    source.key,
                    kind.value,
                )
            # Copies are new content owned by the target, always marked changed
            setattr(
                target,
                f"{kind.value}_pattern",
                pattern.copy() if pattern is not None else None,
            )
    target.replace_attributes(_carried_attributes(source, same_study))


def _carried_attributes(source: Source, same_study: bool) -> Attributes:
    if same_study:
        return source.attributes
    return Attributes.parse(source.attributes.serialize(transient=False))


def _derive_record(
    source: Source,
    study: StudyContext | None,
    facility_id: int,
    service: Service,
    country: Country,
    locked: bool,
    clear_primary_ids: bool,
    parent_source_key: int | None,
    errors: ErrorCollector | None,
) -> Source:
    derived = _new_source(
        study,
        facility_id,
        service,
        country,
        locked,
        is_drt=source.is_drt if service == source.service else False,
        user_record_id=None if clear_primary_ids else source.user_record_id,
        ext_db_key=None if clear_primary_ids else source.ext_db_key,
        ext_record_id=None if clear_primary_ids else source.ext_record_id,
        parent_source_key=parent_source_key,
        errors=errors,
    )
    _copy_fields(source, derived, same_study=study is source.study)
    return derived


# ---------------------------------------------------------------------------
# Derive
# ---------------------------------------------------------------------------
def derive_source(
    source: Source,
    *,
    study: StudyContext | None | _Same = SAME,
    facility_id: int | None = None,
    service: Service | None = None,
    country: Country | None = None,
    locked: bool = False,
    clear_primary_ids: bool = False,
    errors: ErrorCollector | None = None,
) -> Source:
    """Copy a record under a new key with controlled identity changes.

    Unspecified identity fields keep the source's values. Primary record
    references are dropped when the database or any of facility, service
    or country changes, or on request. Deriving a plain record to a DTS
    service promotes it to a group whose reference facility carries the
    record's fields; deriving a group derives every member.
    Deriving a DTS site or reference facility to a non-DTS service yields
    a standalone record outside the group.

    Raises:
        IllegalOperationError: On any refused combination, see below.
        KeyExhaustionError: The destination study has no free keys.
    """
    new_study = source.study if isinstance(study, _Same) else study
    new_facility = source.facility_id if facility_id is None else facility_id
    new_service = service or source.service
    new_country = country or source.country
    role = source.role

    if source.is_replication:
        raise _refuse(errors, "Cannot derive from a replication source")
    if role is SourceRole.GROUP_PARENT and not new_service.is_dts:
        raise _refuse(errors, "A DTS parent can only be derived to a DTS service")
    if new_service.is_dts and role is SourceRole.GROUP_SITE:
        raise _refuse(errors, "Cannot derive a DTS site to a DTS service")
    if new_service.is_dts and role is SourceRole.GROUP_REFERENCE_FACILITY:
        raise _refuse(errors, "Cannot derive a DTS reference facility to a DTS service")
    if locked and not source.locked:
        raise _refuse(errors, "Cannot derive a locked record from an unlocked record")

    new_db_id = new_study.db_id if new_study is not None else None
    clear = (
        clear_primary_ids
        or new_db_id != source.db_id
        or new_facility != source.facility_id
        or new_service != source.service
        or new_country != source.country
    )

    if new_service.is_dts and role is SourceRole.STANDALONE:
        derived = _promote(
            source,
            new_study,
            new_facility,
            new_service,
            new_country,
            locked,
            clear,
            errors,
        )
    elif role is SourceRole.GROUP_PARENT:
        derived = _derive_group(
            source,
            new_study,
            new_facility,
            new_service,
            new_country,
            locked,
            clear,
            errors,
        )
    else:
        derived = _derive_record(
            source,
            new_study,
            new_facility,
            new_service,
            new_country,
            locked,
            clear,
            None,
            errors,
        )
        derived.seal()

    logger.info("Derived source %d from source %d", derived.key, source.key)
    return derived


def _promote(source, study, facility_id, service, country, locked, clear, errors):
    group = _new_source(
        study,
        facility_id,
        service,
        country,
        locked,
        user_record_id=None if clear else source.user_record_id,
        ext_db_key=None if clear else source.ext_db_key,
        ext_record_id=None if clear else source.ext_record_id,
        errors=errors,
    )
    for name in DISPLAY_FIELD_NAMES:
        setattr(group, name, getattr(source, name))
    if not source.service.is_digital:
        group.signal_type = SignalType.default()
    group.replace_attributes(_carried_attributes(source, study is source.study))

    reference = _derive_record(
        source,
        study,
        facility_id,
        catalog.default_dts_member_service(source.service),
        country,
        locked,
        True,
        group.key,
        errors,
    )
    reference.site_number = 0
    reference.replace_attributes(Attributes())
    reference.seal()
    group.dts_members.add_or_replace(reference)
    group.seal()
    return group


def _derive_group(source, study, facility_id, service, country, locked, clear, errors):
    group = _derive_record(
        source, study, facility_id, service, country, locked, clear, None, errors
    )
    for member in source.dts_sources:
        if member.site_number == 0:
            derived = _derive_record(
                member,
                study,
                facility_id,
                member.service,
                member.country,
                member.locked,
                True,
                group.key,
                errors,
            )
        else:
            derived = _derive_record(
                member,
                study,
                facility_id,
                service,
                country,
                locked,
                clear,
                group.key,
                errors,
            )
        derived.seal()
        group.dts_members.add_or_replace(derived)
    group.seal()
    return group


# ---------------------------------------------------------------------------
# Replicate
# ---------------------------------------------------------------------------
def replicate(
    source: Source, channel: int, errors: ErrorCollector | None = None
) -> Source:
    """Create a locked replication of a record on a different channel.

    The replication reuses the source's coverage: ERP and horizontal
    pattern are reset to placeholders for the study engine to fill in, and
    the vertical pattern and tilt survive only on baseline records. An
    analog source is replicated to its digital service. For a group the
    reference facility is derived and every site replicated.

    Raises:
        IllegalOperationError: Preconditions not met.
        KeyExhaustionError: The study has no free keys.
    """
    if source.study is None:
        raise _refuse(errors, "Replication requires a study")
    if source.is_replication:
        raise _refuse(errors, "Cannot replicate a replication source")
    if source.parent_source_key is not None:
        raise _refuse(errors, "Cannot replicate a DTS member, replicate the parent")
    if not (CHANNEL_MIN <= channel <= CHANNEL_MAX):
        raise _refuse(errors, f"Bad replication channel {channel}")
    if source.service.is_digital and channel == source.channel:
        raise _refuse(
            errors, f"Source {source.key} is already digital on channel {channel}"
        )
    service = catalog.digital_equivalent(source.service)
    if service is None:
        raise _refuse(errors, f"No digital service for {source.service.code}")

    member_services = {}
    for member in source.dts_sources:
        if member.site_number > 0:
            member_service = catalog.digital_equivalent(member.service)
            if member_service is None:
                raise _refuse(errors, f"No digital service for {member.service.code}")
            member_services[member.key] = member_service

    if source.is_parent:
        replicated = _replicate_record(source, channel, service, None, errors)
        for member in source.dts_sources:
            if member.site_number == 0:
                copy = _derive_record(
                    member,
                    member.study,
                    member.facility_id,
                    member.service,
                    member.country,
                    True,
                    False,
                    replicated.key,
                    errors,
                )
            else:
                copy = _replicate_record(
                    member, channel, member_services[member.key], replicated.key, errors
                )
            copy.seal()
            replicated.dts_members.add_or_replace(copy)
    else:
        replicated = _replicate_record(source, channel, service, None, errors)
    replicated.seal()

    logger.info(
        "Replicated source %d to channel %d as source %d",
        source.key,
        channel,
        replicated.key,
    )
    return replicated


def _replicate_record(
    source: Source,
    channel: int,
    service: Service,
    parent_source_key: int | None,
    errors: ErrorCollector | None,
) -> Source:
    replicated = _new_source(
        source.study,
        source.facility_id,
        service,
        source.country,
        True,
        is_drt=source.is_drt,
        user_record_id=source.user_record_id,
        ext_db_key=source.ext_db_key,
        ext_record_id=source.ext_record_id,
        original_source_key=source.key,
        parent_source_key=parent_source_key,
        errors=errors,
    )
    _copy_fields(source, replicated, patterns=False)
    replicated.channel = channel

    if service != source.service:
        replicated.signal_type = SignalType.default()
        replicated.frequency_offset = FrequencyOffset.null()
        if service.needs_emission_mask:
            replicated.emission_mask = EmissionMask.default()
        else:
            replicated.emission_mask = EmissionMask.null()

    replicated.peak_erp = ERP_DEF
    replicated.antenna_id = None
    replicated.horizontal_pattern = None
    replicated.horizontal_pattern_orientation = 0.0

    if source.has_attribute(ATTR_IS_BASELINE):
        for kind in (PatternKind.VERTICAL, PatternKind.MATRIX):
            pattern = source.get_pattern(kind)
            setattr(
                replicated,
                f"{kind.value}_pattern",
                pattern.copy() if pattern is not None else None,
            )
    else:
        replicated.vertical_pattern = None
        replicated.matrix_pattern = None
        replicated.vertical_pattern_electrical_tilt = 0.0
        replicated.vertical_pattern_mechanical_tilt = 0.0
        replicated.vertical_pattern_mechanical_tilt_orientation = 0.0
        replicated.use_generic_vertical_pattern = True
    return replicated
