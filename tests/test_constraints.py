import pytest

from capronesearch import Criteria, Range


class TestWhere:
    """Value dispatch of where and where_not."""

    def test_scalar_becomes_term_filter(self):
        assert Criteria().where(state="approved").filter_values == ({"term": {"state": "approved"}},)

    def test_sequences_become_terms_filter(self):
        criteria = Criteria().where(id=[1, 2], tags=("a", "b"))

        assert criteria.filter_values == (
            {"terms": {"id": [1, 2]}},
            {"terms": {"tags": ["a", "b"]}},
        )

    def test_range_becomes_inclusive_range_filter(self):
        criteria = Criteria().where(price=Range(100, 200))

        assert criteria.filter_values == ({"range": {"price": {"gte": 100, "lte": 200}}},)

    def test_python_range_uses_first_and_last_element(self):
        criteria = Criteria().where(price=range(100, 201))

        assert criteria.filter_values == ({"range": {"price": {"gte": 100, "lte": 200}}},)

    def test_empty_python_range_is_rejected(self):
        with pytest.raises(ValueError):
            Criteria().where(price=range(0))

    def test_none_requires_missing_field(self):
        criteria = Criteria().where(deleted_at=None)

        assert criteria.filter_values == ()
        assert criteria.must_not_values == ({"exists": {"field": "deleted_at"}},)

    def test_mapping_argument_allows_dotted_fields(self):
        criteria = Criteria().where({"user.id": 1}, state="new")

        assert criteria.filter_values == ({"term": {"user.id": 1}}, {"term": {"state": "new"}})

    def test_where_not_negates_each_value_kind(self):
        criteria = Criteria().where_not(state="new", id=[1, 2], price=Range(1, 5), deleted_at=None)

        assert criteria.must_not_values == (
            {"term": {"state": "new"}},
            {"terms": {"id": [1, 2]}},
            {"range": {"price": {"gte": 1, "lt": 5}}},
        )
        assert criteria.filter_values == ({"exists": {"field": "deleted_at"}},)

    def test_where_not_excludes_the_whole_python_range(self):
        criteria = Criteria().where_not(price=range(100, 201))

        assert criteria.must_not_values == ({"range": {"price": {"gte": 100, "lt": 201}}},)

    def test_where_is_independent_of_key_order(self):
        left = Criteria().where(a=1, b=[2, 3], c=None)
        right = Criteria().where(c=None, b=[2, 3], a=1)

        assert sorted(map(repr, left.filter_values)) == sorted(map(repr, right.filter_values))
        assert left.must_not_values == right.must_not_values

    def test_where_equals_chained_single_filters(self):
        combined = Criteria().where(a=1, b=2)
        chained = Criteria().filter({"term": {"a": 1}}).filter({"term": {"b": 2}})

        assert combined.request == chained.request


class TestClauses:
    def test_search_adds_query_string_with_and_operator(self):
        criteria = Criteria().search("hello world", default_field="title")

        assert criteria.must_values == (
            {"query_string": {"query": "hello world", "default_operator": "AND", "default_field": "title"}},
        )

    def test_search_operator_can_be_overridden(self):
        criteria = Criteria().search("a b", default_operator="OR")

        assert criteria.must_values[0]["query_string"]["default_operator"] == "OR"

    @pytest.mark.parametrize("q", ["", "   ", None])
    def test_blank_search_is_a_no_op(self, q):
        criteria = Criteria().where(a=1)

        assert criteria.search(q) == criteria

    def test_should_wraps_clauses_into_must(self):
        criteria = Criteria().should([{"term": {"a": 1}}, {"term": {"b": 2}}], minimum_should_match=1)

        assert criteria.must_values == (
            {"bool": {"should": [{"term": {"a": 1}}, {"term": {"b": 2}}], "minimum_should_match": 1}},
        )

    def test_sugar_clauses(self):
        criteria = Criteria().range("likes", gt=10, lt=100).exists("user_id").exists_not("deleted_at").match_all()

        assert criteria.filter_values == (
            {"range": {"likes": {"gt": 10, "lt": 100}}},
            {"exists": {"field": "user_id"}},
            {"match_all": {}},
        )
        assert criteria.must_not_values == ({"exists": {"field": "deleted_at"}},)

    def test_raw_clauses_accumulate_in_order(self):
        criteria = Criteria().must({"term": {"a": 1}}, {"term": {"b": 2}}).must_not({"term": {"c": 3}})

        assert criteria.must_values == ({"term": {"a": 1}}, {"term": {"b": 2}})
        assert criteria.must_not_values == ({"term": {"c": 3}},)


class TestImmutability:
    def test_chaining_never_mutates_the_receiver(self):
        base = Criteria().where(available=True)
        base.where(category="books").sort("price").limit(5)

        assert base.filter_values == ({"term": {"available": True}},)
        assert base.sort_values is None
        assert base.limit_value is None

    def test_shared_prefix_yields_independent_queries(self):
        base = Criteria().where(available=True)

        cheap = base.range("price", lt=10)
        tagged = base.where(tags=["sale"])

        assert len(cheap.filter_values) == 2
        assert len(tagged.filter_values) == 2
        assert cheap.filter_values[1] != tagged.filter_values[1]

    def test_derived_copy_drops_cached_request(self):
        base = Criteria().where(a=1)
        assert "query" in base.request

        derived = base.limit(5)

        assert "request" not in vars(derived)
        assert derived.request["size"] == 5
        assert base.request["size"] == 30


class TestSortingAndPagination:
    def test_sort_is_cumulative(self):
        criteria = Criteria().sort("user_id").order({"id": "desc"})

        assert criteria.sort_values == ("user_id", {"id": "desc"})

    def test_resort_replaces(self):
        criteria = Criteria().sort("user_id").resort({"id": "desc"})

        assert criteria.sort_values == ({"id": "desc"},)
        assert Criteria().sort("a").reorder("b").sort_values == ("b",)

    def test_offset_and_limit_are_coerced_to_int(self):
        criteria = Criteria().offset("20").limit("10")

        assert (criteria.offset_value, criteria.limit_value) == (20, 10)

    def test_defaults(self):
        assert Criteria().offset_value_with_default == 0
        assert Criteria().limit_value_with_default == 30

    def test_paginate(self):
        criteria = Criteria().paginate(page=3, per_page=10)

        assert (criteria.offset_value, criteria.limit_value) == (20, 10)

    def test_paginate_floors_page_and_keeps_limit(self):
        criteria = Criteria().limit(15).paginate(page=0)

        assert (criteria.offset_value, criteria.limit_value) == (0, 15)

    def test_page_and_per(self):
        criteria = Criteria().per(10).page(4)

        assert (criteria.offset_value, criteria.limit_value) == (30, 10)
        assert criteria.per(5).offset_value == 15


class TestSections:
    def test_highlight_accepts_names_lists_and_mappings(self):
        criteria = (
            Criteria()
            .highlight("title")
            .highlight(["message"], require_field_match=False)
            .highlight({"body": {"type": "fvh"}})
        )

        assert criteria.highlight_values == {
            "require_field_match": False,
            "fields": {"title": {}, "message": {}, "body": {"type": "fvh"}},
        }

    def test_source(self):
        assert Criteria().source(["id"]).request["_source"] == ["id"]
        assert Criteria().source(False).request["_source"] is False

    def test_custom_sections_merge(self):
        criteria = Criteria().custom({"min_score": 1}).custom(rescore={"window_size": 10})

        assert criteria.custom_value == {"min_score": 1, "rescore": {"window_size": 10}}

    def test_aggregate_field_name_builds_terms_aggregation(self):
        criteria = Criteria().aggregate("category", size=5)

        assert criteria.aggregation_values == {"category": {"terms": {"field": "category", "size": 5}}}

    def test_aggregate_mapping_is_used_as_is(self):
        criteria = Criteria().aggregate({"revenue": {"sum": {"field": "price"}}})

        assert criteria.aggregation_values == {"revenue": {"sum": {"field": "price"}}}

    def test_aggregate_overwrites_same_name(self):
        criteria = Criteria().aggregate("category").aggregate("category", size=3).aggregate("user_id")

        assert criteria.aggregation_values == {
            "category": {"terms": {"field": "category", "size": 3}},
            "user_id": {"terms": {"field": "user_id"}},
        }

    def test_aggregate_block_nests_into_named_entry(self):
        criteria = Criteria().aggregate(
            "category",
            lambda agg: agg.where(available=True).aggregate({"revenue": {"sum": {"field": "price"}}})
        )

        assert criteria.aggregation_values == {
            "category": {
                "terms": {"field": "category"},
                "aggregations": {"revenue": {"sum": {"field": "price"}}},
                "filter": {"bool": {"filter": [{"term": {"available": True}}]}},
            }
        }
