from decimal import Decimal

from offers.services.ranking import SortMode, ViewFilters, best_score, summarize, view
from offers.tests.helpers import make_offer


def _prices(offers):
    return [offer.price for offer in offers]


def test_cheapest_orders_by_price():
    offers = [make_offer(420, 400), make_offer(180, 700), make_offer(300, 500)]

    assert _prices(view(offers, ViewFilters(), SortMode.CHEAPEST)) == [Decimal(180), Decimal(300), Decimal(420)]


def test_cheapest_breaks_ties_by_duration():
    slow = make_offer(200, 600, airline="AA")
    quick = make_offer(200, 300, airline="BA")

    assert view([slow, quick], None, "cheapest") == [quick, slow]


def test_fastest_orders_by_duration_then_price():
    offers = [make_offer(300, 500), make_offer(250, 500), make_offer(900, 200)]

    ranked = view(offers, None, SortMode.FASTEST)

    assert [offer.duration_minutes for offer in ranked] == [200, 500, 500]
    assert _prices(ranked) == [Decimal(900), Decimal(250), Decimal(300)]


def test_best_uses_price_plus_half_duration():
    cheap_but_long = make_offer(200, 900)  # 650
    balanced = make_offer(350, 400)  # 550

    assert best_score(balanced) == Decimal(550)
    assert view([cheap_but_long, balanced]) == [balanced, cheap_but_long]


def test_sort_is_stable_and_idempotent():
    first = make_offer(300, 300, airline="AA")
    second = make_offer(300, 300, airline="BA")
    third = make_offer(300, 300, airline="CA")
    offers = [first, second, third]

    once = view(offers, None, "cheapest")
    twice = view(offers, None, "cheapest")

    assert once == [first, second, third]
    assert once == twice
    assert offers == [first, second, third]


def test_direct_filter_keeps_only_nonstop_offers():
    offers = [make_offer(100, 300, stops=1), make_offer(200, 300), make_offer(150, 300, stops=2)]

    kept = view(offers, ViewFilters.from_params(stops="direct"), "cheapest")

    assert kept and all(offer.stop_count == 0 for offer in kept)


def test_one_stop_filter_allows_up_to_one():
    offers = [make_offer(100, 300, stops=1), make_offer(200, 300), make_offer(150, 300, stops=2)]

    kept = view(offers, ViewFilters.from_params(stops="one"), "cheapest")

    assert [offer.stop_count for offer in kept] == [1, 0]


def test_airline_allow_list_and_ceilings():
    offers = [
        make_offer(100, 300, airline="AA"),
        make_offer(500, 300, airline="BA"),
        make_offer(200, 900, airline="BA"),
        make_offer(250, 300, airline="BA"),
    ]

    kept = view(
        offers,
        ViewFilters.from_params(airlines=["ba"], price_max="400", duration_max=600),
        "cheapest",
    )

    assert [(offer.airline, offer.price) for offer in kept] == [("BA", Decimal(250))]


def test_empty_filters_mean_no_restriction():
    offers = [make_offer(100, 300, stops=2, airline="AA"), make_offer(200, 300)]

    assert len(view(offers, ViewFilters.from_params(stops="any", airlines=[]))) == 2


def test_unknown_sort_mode_falls_back_to_best():
    assert SortMode.from_value("weird") == SortMode.BEST


def test_summary_of_offers():
    offers = [make_offer(420, 400, airline="BA"), make_offer(180, 700, stops=1, airline="AA")]

    summary = summarize(offers)

    assert summary["minPrice"] == Decimal(180)
    assert summary["maxPrice"] == Decimal(420)
    assert summary["minDuration"] == 400
    assert summary["maxDuration"] == 700
    assert summary["directCount"] == 1
    assert summary["airlines"] == ["AA", "BA"]
    assert summarize([])["directCount"] == 0


def test_plain_dict_filters_are_accepted():
    direct = make_offer(140, 400, stops=0)
    pricey = make_offer(300, 380, stops=0)
    one_stop = make_offer(120, 600, stops=1)
    offers = [pricey, one_stop, direct]

    assert view(offers, {"stops": "direct", "price_max": "150"}, "cheapest") == [direct]
    assert view(offers, {}, "cheapest") == [one_stop, direct, pricey]
