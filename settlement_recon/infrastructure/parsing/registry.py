"""Platform parser registry: one parse function per supported platform."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable

from settlement_recon.domain.models import ParseResult, PlatformKey
from settlement_recon.infrastructure.parsing.my_real_trip import parse_my_real_trip
from settlement_recon.infrastructure.parsing.triple import parse_triple
from settlement_recon.infrastructure.parsing.waug import parse_waug
from settlement_recon.infrastructure.parsing.zoom_zoom import parse_zoom_zoom

PlatformParser = Callable[[BytesIO | Path | bytes], ParseResult]

PARSERS: dict[PlatformKey, PlatformParser] = {
    PlatformKey.MY_REAL_TRIP: parse_my_real_trip,
    PlatformKey.ZOOM_ZOOM: parse_zoom_zoom,
    PlatformKey.TRIPLE: parse_triple,
    PlatformKey.WAUG: parse_waug,
}


def get_parser(platform: PlatformKey | str) -> PlatformParser:
    return PARSERS[PlatformKey(platform)]


def parse_settlement_file(platform: PlatformKey | str, source: BytesIO | Path | bytes) -> ParseResult:
    return get_parser(platform)(source)
