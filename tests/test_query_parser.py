from shopscrape.query_parser import parse_natural_language_query


def test_under_price_brand_and_platform():
    parsed = parse_natural_language_query("cheap nike shoes on zalora under 2,000")
    assert parsed.query == "nike shoes"
    assert parsed.filters.max_price == 2000
    assert parsed.filters.min_price is None
    assert parsed.filters.brand == "Nike"
    assert parsed.platforms == ["zalora"]
    assert parsed.sort_by is None


def test_cheap_default_threshold():
    parsed = parse_natural_language_query("show me cheap earphones")
    assert parsed.query == "earphones"
    assert parsed.filters.max_price == 300


def test_premium_default_threshold():
    assert parse_natural_language_query("premium leather bag").filters.min_price == 800


def test_between_and_range():
    parsed = parse_natural_language_query("dress between ₱500 and ₱1,500")
    assert (parsed.filters.min_price, parsed.filters.max_price) == (500, 1500)
    assert parsed.query == "dress"

    parsed = parse_natural_language_query("sneakers 1500-3000")
    assert (parsed.filters.min_price, parsed.filters.max_price) == (1500, 3000)
    assert parsed.query == "sneakers"


def test_over_price():
    parsed = parse_natural_language_query("watch over 5000")
    assert parsed.filters.min_price == 5000
    assert parsed.query == "watch"


def test_rating_phrases():
    assert parse_natural_language_query("headphones 4 stars").filters.min_rating == 4
    assert parse_natural_language_query("laptop rated 4.5 or higher").filters.min_rating == 4.5
    assert parse_natural_language_query("samsung phones with good reviews").filters.min_rating == 4
    parsed = parse_natural_language_query("best power bank")
    assert parsed.filters.min_rating == 4.5
    assert parsed.query == "power bank"


def test_sort_phrases():
    assert parse_natural_language_query("cheapest iphone case").sort_by == "price_asc"
    assert parse_natural_language_query("most expensive watch").sort_by == "price_desc"
    assert parse_natural_language_query("best selling jeans").sort_by == "popularity_desc"
    assert parse_natural_language_query("newest dresses").sort_by == "date_desc"


def test_cheapest_does_not_imply_a_price_cap():
    parsed = parse_natural_language_query("cheapest iphone case")
    assert parsed.filters.max_price is None
    assert parsed.query == "iphone case"


def test_best_selling_does_not_imply_a_rating():
    assert parse_natural_language_query("best selling jeans").filters.min_rating is None


def test_all_platforms_are_recognised():
    parsed = parse_natural_language_query("tote bag from shein or shopee, lazada and zalora")
    assert parsed.platforms == ["shein", "shopee", "lazada", "zalora"]


def test_filler_removal_respects_word_boundaries():
    # "a", "for", "the" are fillers; "and", "sandals" and "forest" are not
    parsed = parse_natural_language_query("find me a forest green sandals for the beach")
    assert parsed.query == "forest green sandals beach"


def test_brand_match_needs_a_whole_word():
    assert parse_natural_language_query("flashlight").filters.brand is None
    assert parse_natural_language_query("hp laptop").filters.brand == "HP"
    assert parse_natural_language_query("h&m jacket").filters.brand == "H&M"


def test_plain_query_is_untouched():
    parsed = parse_natural_language_query("Linen Shirt")
    assert parsed.query == "Linen Shirt"
    assert parsed.platforms is None
    assert parsed.filters.model_dump(exclude_none=True) == {}


def test_model_names_are_not_price_bounds():
    parsed = parse_natural_language_query("nike air max 90")
    assert parsed.query == "nike air max 90"
    assert parsed.filters.max_price is None
    assert parsed.filters.brand == "Nike"

    parsed = parse_natural_language_query("iphone 14 pro max 256gb")
    assert parsed.query == "iphone 14 pro max 256gb"
    assert parsed.filters.model_dump(exclude_none=True) == {}


def test_specs_are_not_price_bounds():
    parsed = parse_natural_language_query("cheap laptops with at least 8GB RAM")
    assert parsed.query == "laptops 8GB RAM"
    assert parsed.filters.min_price is None
    assert parsed.filters.max_price == 300

    assert parse_natural_language_query("powerbank under 20000mah").filters.max_price is None


def test_max_and_min_need_a_currency():
    parsed = parse_natural_language_query("running shoes max ₱2,500")
    assert parsed.filters.max_price == 2500
    assert parsed.query == "running shoes"
    assert parse_natural_language_query("watch at least php 1000").filters.min_price == 1000


def test_brand_display_names():
    assert parse_natural_language_query("levi's jeans").filters.brand == "Levi's"
    assert parse_natural_language_query("audio-technica headphones").filters.brand == "Audio-Technica"
    assert parse_natural_language_query("new balance 530").filters.brand == "New Balance"
