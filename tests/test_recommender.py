from marketplace.utils.recommender import calculate_match_scores, normalize_skills


def make_item(item_id, skill_names, tiebreaker=0):
    return {
        "item_id": item_id,
        "skill_names": set(skill_names),
        "item_object": {"id": item_id},
        "tiebreaker": tiebreaker,
    }


def test_empty_source_returns_empty():
    res = calculate_match_scores(set(), [make_item("1", ["python"])])
    assert res == []


def test_normalize_skills():
    assert normalize_skills([" React ", "PYTHON", "", "  "]) == {"react", "python"}
    assert normalize_skills(None) == set()


def test_exact_matches_score():
    source = {"python", "django"}
    items = [make_item("1", ["python", "flask"]), make_item("2", ["javascript"])]
    scored = calculate_match_scores(source, items)
    # 只有 item 1 有完全相同的技能
    assert [item["item_id"] for item in scored] == ["1"]
    assert scored[0]["score"] >= 1.0
    assert scored[0]["item_object"] == {"id": "1"}


def test_fuzzy_matches_score():
    source = {"reactjs"}
    items = [make_item("1", ["react"]), make_item("2", ["angular"])]
    scored = calculate_match_scores(source, items)
    ids = [s["item_id"] for s in scored]
    assert "1" in ids
    assert "2" not in ids
    assert 0.7 < scored[0]["score"] < 1.0


def test_items_without_skills_are_skipped():
    scored = calculate_match_scores({"python"}, [make_item("1", [])])
    assert scored == []


def test_sorting_and_tiebreaker():
    source = {"python", "sql"}
    item_a = make_item("a", ["python"], tiebreaker=3.0)
    item_b = make_item("b", ["python"], tiebreaker=5.0)
    item_c = make_item("c", ["python", "sql"], tiebreaker=0)
    scored = calculate_match_scores(source, [item_a, item_b, item_c])
    # 分數高的在前，同分時 tiebreaker 大的在前
    assert [item["item_id"] for item in scored] == ["c", "b", "a"]
