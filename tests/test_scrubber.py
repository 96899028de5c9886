from errorgate._scrubber import scrub_mapping, scrub_vars

# --- scrub_mapping ---


def test_scrub_mapping_passes_safe_keys():
    result = scrub_mapping({"remark": "hello", "page": "/home"})
    assert result == {"remark": "hello", "page": "/home"}


def test_scrub_mapping_filters_sensitive_keys():
    result = scrub_mapping({"password": "hunter2", "auth_token": "tok", "remark": "x"})
    assert result == {"password": "[filtered]", "auth_token": "[filtered]", "remark": "x"}


def test_scrub_mapping_recurses_into_nested_dicts():
    result = scrub_mapping({"remark": {"user": "tom", "secret": "s3"}})
    assert result == {"remark": {"user": "tom", "secret": "[filtered]"}}


def test_scrub_mapping_case_insensitive():
    result = scrub_mapping({"API_KEY": "abc", "Credential": "xyz"})
    assert result == {"API_KEY": "[filtered]", "Credential": "[filtered]"}


def test_scrub_mapping_leaves_non_dicts_alone():
    assert scrub_mapping("plain remark") == "plain remark"


def test_scrub_mapping_does_not_mutate_input():
    data = {"token": "abc"}
    scrub_mapping(data)
    assert data == {"token": "abc"}


# --- scrub_vars ---


def test_scrub_vars_skips_dunders():
    result = scrub_vars({"__name__": "foo", "__module__": "bar", "x": 1})
    assert "__name__" not in result
    assert "__module__" not in result
    assert "x" in result


def test_scrub_vars_redacts_sensitive_keys():
    result = scrub_vars({"password": "hunter2", "api_key": "sk-123", "name": "tom"})
    assert result["password"] == "[filtered]"
    assert result["api_key"] == "[filtered]"
    assert result["name"] == "'tom'"


def test_scrub_vars_repr_truncates_long_values():
    result = scrub_vars({"data": "x" * 500})
    assert len(result["data"]) <= 200


def test_scrub_vars_handles_repr_failure():
    class BadRepr:
        def __repr__(self):
            raise RuntimeError("boom")

    result = scrub_vars({"obj": BadRepr()})
    assert result["obj"] == "<BadRepr>"


def test_scrub_vars_caps_at_50_keys():
    big = {f"key_{i}": i for i in range(100)}
    result = scrub_vars(big)
    assert len(result) == 50
