"""
Bulk voter import
=================

Rows come either as a ``voters`` list of ``{full_name, document, email}``
objects or as raw CSV text. Each row is handled on its own:

- invalid rows are reported and skipped
- a known document is linked to the voting point (counted as skipped)
- a new document gets an auth user, a voter profile and a random 6-digit
  PIN, returned once in ``created_voters``

There is no rollback across rows.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field

from django.db import DatabaseError, transaction # pyright: ignore[reportMissingModuleSource]

from .accounts import create_user_with_profile, generate_pin
from .audit import audit_request
from .exceptions import ApiError, ValidationFailed
from .forms import VoterRowForm
from .models import Profile, Voter, VotingPoint
from .services import ensure_not_started, get_object

logger = logging.getLogger(__name__)

# Normalised header -> row key
HEADER_ALIASES = {
    'fullname': 'full_name',
    'name': 'full_name',
    'nombre': 'full_name',
    'nombrecompleto': 'full_name',
    'document': 'document',
    'documento': 'document',
    'cedula': 'document',
    'numerodocumento': 'document',
    'email': 'email',
    'correo': 'email',
    'correoelectronico': 'email',
}


def _norm_header(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def _cell(value: object) -> str:
    return str(value or "").strip()


@dataclass
class ImportResult:
    total: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    created_voters: list[dict] = field(default_factory=list)

    def add_error(self, row: int, values: dict, message: str) -> None:
        self.errors.append({
            'row': row,
            'document': values.get('document', ''),
            'full_name': values.get('full_name', ''),
            'error': message,
        })

    def as_dict(self) -> dict:
        return {
            'total': self.total,
            'created': self.created,
            'skipped': self.skipped,
            'errors': self.errors,
            'created_voters': self.created_voters,
        }


def parse_voter_csv(text: str) -> list[dict[str, str]]:
    """
    Parse CSV text into row dicts keyed ``full_name``/``document``/``email``.

    The delimiter is sniffed (comma, semicolon, tab, pipe). Unknown columns
    are ignored. Rows with every known cell empty are dropped.
    """
    text = (text or "").lstrip("\ufeff")
    if not text.strip():
        return []

    try:
        dialect = csv.Sniffer().sniff(text[:64 * 1024], delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    reader = csv.reader(io.StringIO(text), dialect)
    headers = next(reader, [])
    columns = {idx: HEADER_ALIASES.get(_norm_header(h)) for idx, h in enumerate(headers)}
    if 'document' not in columns.values():
        raise ValidationFailed('CSV must have a document column')

    rows = []
    for raw in reader:
        row = {key: "" for key in ('full_name', 'document', 'email')}
        for idx, value in enumerate(raw):
            key = columns.get(idx)
            if key:
                row[key] = _cell(value)
        if any(row.values()):
            rows.append(row)
    return rows


def _import_row(point: VotingPoint, values: dict, result: ImportResult, row_num: int) -> None:
    form = VoterRowForm(data=values)
    if not form.is_valid():
        first_error = next(iter(form.errors.values()))[0]
        result.add_error(row_num, values, first_error)
        return
    data = form.cleaned_data

    existing = Profile.objects.filter(document=data['document']).first()
    if existing is not None:
        if existing.role != Profile.Role.VOTER:
            result.add_error(row_num, values, 'Document belongs to a non-voter account')
            return
        record = Voter.objects.filter(profile=existing).first()
        if record is None:
            Voter.objects.create(profile=existing, voting_point=point)
        elif record.voting_point_id != point.id:
            result.add_error(row_num, values, 'Already assigned to another voting point')
            return
        result.skipped += 1
        return

    pin = generate_pin()
    try:
        profile = create_user_with_profile(
            role=Profile.Role.VOTER,
            full_name=data['full_name'],
            document=data['document'],
            email=data['email'],
            password=pin,
        )
    except ApiError as e:
        result.add_error(row_num, values, e.message)
        return

    try:
        with transaction.atomic():
            Voter.objects.create(profile=profile, voting_point=point)
    except DatabaseError as e:
        logger.error(f"Voter {profile.id} created but not assigned to point {point.id}: {e}")
        result.add_error(row_num, values, 'User created but could not be assigned to the voting point')
        return

    result.created += 1
    result.created_voters.append({
        'full_name': data['full_name'],
        'document': data['document'],
        'email': data['email'],
        'password': pin,
    })


def import_voters(point_id, *, voters=None, csv_text=None, request=None) -> dict:
    """
    Import voters into a voting point whose election has not started.

    Returns a summary dict: total, created, skipped, errors, created_voters.
    """
    point = get_object(VotingPoint.objects.select_related('election'), point_id, 'Voting point')
    ensure_not_started(point.election, 'Cannot import voters into an election that has started')

    if csv_text:
        rows = parse_voter_csv(csv_text)
    elif isinstance(voters, list):
        rows = [
            {key: _cell(item.get(key)) for key in ('full_name', 'document', 'email')}
            if isinstance(item, dict) else {}
            for item in voters
        ]
    else:
        rows = []

    if not rows:
        raise ValidationFailed('No voters were provided')

    result = ImportResult(total=len(rows))
    for row_num, values in enumerate(rows, start=1):
        try:
            _import_row(point, values, result, row_num)
        except Exception as e:
            logger.exception(f"Bulk import row {row_num} failed")
            result.add_error(row_num, values, str(e) or 'Unexpected error')

    logger.info(
        f"Bulk import into {point.id}: {result.created} created, "
        f"{result.skipped} skipped, {len(result.errors)} error(s)"
    )
    audit_request(request, 'bulk_voters_upload', 'voting_point', point.id, {
        'total': result.total,
        'created': result.created,
        'skipped': result.skipped,
        'errors': len(result.errors),
    })
    return result.as_dict()
