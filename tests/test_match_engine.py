from datetime import date

import pytest

from settlement_recon.domain.matching import MatchPolicy, SettlementMatcher, find_unclaimed
from settlement_recon.domain.models import DateRange, PlatformKey, PriceTable, ProductPrice, Reservation, SettlementRow
from settlement_recon.domain.results import MatchResult, MatchTag

A = PlatformKey.MY_REAL_TRIP
B = PlatformKey.TRIPLE
TOUR = date(2026, 2, 10)


def make_row(name="JOHN SMITH", units=2, price=20000, day=TOUR, line=2, platform=A) -> SettlementRow:
    return SettlementRow(
        platform=platform,
        external_ref=f"R{line}",
        tour_date=day,
        customer_name=name,
        units=units,
        price=price,
        line_number=line,
        product_code="TURTLE",
    )


def make_reservation(rid, name="john   smith", units=2, day=TOUR, platform=A, **kwargs) -> Reservation:
    return Reservation(id=rid, platform=platform, tour_date=day, customer_name=name, units=units, **kwargs)


def price_table(unit_price=10000, platform=A) -> PriceTable:
    return PriceTable([ProductPrice(platform=platform, product_code="TURTLE", unit_price=unit_price, valid_from=date(2026, 1, 1))])


def test_exact_match_with_zero_delta():
    results = SettlementMatcher().match([make_row()], [make_reservation("r1")], price_table(10000))

    assert len(results) == 1
    result = results[0]
    assert result.tag is MatchTag.MATCHED
    assert result.reservation.id == "r1"
    assert result.expected_price == 20000
    assert result.price_delta == 0


def test_price_above_expected_is_mismatch():
    results = SettlementMatcher().match([make_row()], [make_reservation("r1")], price_table(9000))

    assert results[0].tag is MatchTag.PRICE_MISMATCH
    assert results[0].expected_price == 18000
    assert results[0].price_delta == 2000
    assert results[0].reservation.id == "r1"


def test_delta_within_tolerance_is_matched():
    matcher = SettlementMatcher(MatchPolicy(price_tolerance=2000))

    results = matcher.match([make_row()], [make_reservation("r1")], price_table(9000))

    assert results[0].tag is MatchTag.MATCHED
    assert results[0].price_delta == 2000


def test_unit_count_breaks_tie():
    reservations = [make_reservation("r3", units=3), make_reservation("r2", units=2)]

    results = SettlementMatcher().match([make_row(units=2)], reservations, price_table())

    assert results[0].tag is MatchTag.MATCHED
    assert results[0].reservation.id == "r2"


def test_no_reservation_in_window_is_unmatched():
    far_away = make_reservation("r1", day=date(2026, 3, 1))

    results = SettlementMatcher().match([make_row()], [far_away], price_table())

    assert results[0].tag is MatchTag.UNMATCHED
    assert results[0].candidates == ()


def test_other_platform_is_never_a_candidate():
    results = SettlementMatcher().match([make_row()], [make_reservation("r1", platform=B)], price_table())

    assert results[0].tag is MatchTag.UNMATCHED


def test_identical_candidates_are_ambiguous_and_not_consumed():
    reservations = [make_reservation("r1"), make_reservation("r2")]
    rows = [make_row(line=2), make_row(line=3)]

    results = SettlementMatcher().match(rows, reservations, price_table())

    assert [r.tag for r in results] == [MatchTag.AMBIGUOUS, MatchTag.AMBIGUOUS]
    assert {c.id for c in results[0].candidates} == {"r1", "r2"}
    assert results[0].reservation is None


def test_reservation_is_claimed_only_once():
    rows = [make_row(line=2), make_row(line=3)]

    results = SettlementMatcher().match(rows, [make_reservation("r1")], price_table())

    assert results[0].tag is MatchTag.MATCHED
    assert results[1].tag is MatchTag.UNMATCHED


def test_claimed_ids_are_unique_across_batch():
    reservations = [make_reservation(f"r{i}", name=f"guest {i}") for i in range(5)]
    rows = [make_row(name=f"GUEST {i % 3}", line=i + 2) for i in range(6)]

    results = SettlementMatcher().match(rows, reservations, price_table())

    claimed = [r.reservation.id for r in results if r.reservation is not None]
    assert len(claimed) == len(set(claimed))


def test_truncated_name_matches_by_containment():
    results = SettlementMatcher().match(
        [make_row(name="JOHN SMI")], [make_reservation("r1", name="John Smith")], price_table()
    )

    assert results[0].tag is MatchTag.MATCHED
    assert "name matched by containment" in results[0].notes


def test_reordered_name_matches():
    results = SettlementMatcher().match(
        [make_row(name="SMITH JOHN")], [make_reservation("r1", name="John Smith")], price_table()
    )

    assert results[0].tag is MatchTag.MATCHED


def test_exact_name_beats_containment():
    reservations = [make_reservation("r1", name="John Smithson"), make_reservation("r2", name="John Smith")]

    results = SettlementMatcher().match([make_row(name="John Smith")], reservations, price_table())

    assert results[0].reservation.id == "r2"


def test_unrelated_name_does_not_match():
    results = SettlementMatcher().match(
        [make_row(name="JANE DOE")], [make_reservation("r1", name="John Smith")], price_table()
    )

    assert results[0].tag is MatchTag.UNMATCHED


def test_containment_can_be_disabled():
    matcher = SettlementMatcher(MatchPolicy(allow_containment=False))

    results = matcher.match([make_row(name="JOHN SMI")], [make_reservation("r1", name="John Smith")], price_table())

    assert results[0].tag is MatchTag.UNMATCHED


def test_honorifics_are_stripped_when_configured():
    matcher = SettlementMatcher(MatchPolicy(honorifics=("mr",), strip_punctuation=True, allow_containment=False))

    results = matcher.match([make_row(name="Mr. John Smith")], [make_reservation("r1")], price_table())

    assert results[0].tag is MatchTag.MATCHED


def test_off_by_one_day_falls_back_to_adjacent_date():
    reservation = make_reservation("r1", day=date(2026, 2, 11))

    results = SettlementMatcher().match([make_row()], [reservation], price_table())

    assert results[0].tag is MatchTag.MATCHED
    assert "tour date off by 1 day(s)" in results[0].notes


def test_exact_date_preferred_over_adjacent():
    reservations = [make_reservation("r-next", day=date(2026, 2, 11)), make_reservation("r-same")]

    results = SettlementMatcher().match([make_row()], reservations, price_table())

    assert results[0].reservation.id == "r-same"


def test_settled_and_cancelled_reservations_are_skipped():
    reservations = [make_reservation("r1", settled=True), make_reservation("r2", status="cancelled")]

    results = SettlementMatcher().match([make_row()], reservations, price_table())

    assert results[0].tag is MatchTag.UNMATCHED


def test_missing_price_flags_for_review():
    results = SettlementMatcher().match([make_row()], [make_reservation("r1")], PriceTable([]))

    assert results[0].tag is MatchTag.PRICE_MISMATCH
    assert results[0].expected_price is None
    assert results[0].price_delta is None


def test_latest_price_applies():
    prices = PriceTable(
        [
            ProductPrice(A, "TURTLE", 9000, valid_from=date(2025, 1, 1), valid_to=date(2026, 12, 31)),
            ProductPrice(A, "TURTLE", 10000, valid_from=date(2026, 2, 1)),
        ]
    )

    results = SettlementMatcher().match([make_row()], [make_reservation("r1")], prices)

    assert results[0].tag is MatchTag.MATCHED


def test_results_follow_source_line_order():
    rows = [make_row(line=9), make_row(line=3, name="JANE DOE")]

    results = SettlementMatcher().match(rows, [], price_table())

    assert [r.row.line_number for r in results] == [3, 9]


def test_result_invariants_are_enforced():
    row = make_row()
    with pytest.raises(ValueError):
        MatchResult(tag=MatchTag.AMBIGUOUS, row=row, candidates=(make_reservation("r1"),))
    with pytest.raises(ValueError):
        MatchResult(tag=MatchTag.MATCHED, row=row, candidates=(), price_delta=0)
    with pytest.raises(ValueError):
        MatchResult(tag=MatchTag.UNMATCHED, row=row, candidates=(make_reservation("r1"),))


def test_find_unclaimed_lists_leftover_reservations():
    reservations = [make_reservation("r1"), make_reservation("r2", name="Jane Doe"), make_reservation("r3", day=date(2026, 2, 9))]
    results = SettlementMatcher().match([make_row()], reservations, price_table())

    unclaimed = find_unclaimed(reservations, results, DateRange(TOUR, TOUR), A)

    assert [r.id for r in unclaimed] == ["r2"]


def test_same_name_one_day_off_beats_other_guest_on_tour_date():
    reservations = [
        make_reservation("r-other", name="Kim Minji"),
        make_reservation("r-next", day=date(2026, 2, 11)),
    ]

    results = SettlementMatcher().match([make_row()], reservations, price_table())

    assert results[0].tag is MatchTag.MATCHED
    assert results[0].reservation.id == "r-next"
    assert "tour date off by 1 day(s)" in results[0].notes


def test_no_name_match_on_or_near_tour_date_is_unmatched():
    reservations = [
        make_reservation("r-other", name="Kim Minji"),
        make_reservation("r-next", name="Park Jisoo", day=date(2026, 2, 11)),
    ]

    results = SettlementMatcher().match([make_row()], reservations, price_table())

    assert results[0].tag is MatchTag.UNMATCHED
    assert results[0].notes == ("no name match among 2 reservation(s) near the tour date",)


def test_partial_refund_is_noted_on_the_result():
    row = SettlementRow(A, "R2", TOUR, "JOHN SMITH", 2, 15000, 2, "TURTLE", partial_refund=True)

    results = SettlementMatcher().match([row], [make_reservation("r1")], price_table())

    assert results[0].tag is MatchTag.PRICE_MISMATCH
    assert "booking includes a partial refund" in results[0].notes
