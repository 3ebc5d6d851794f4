import pytest

from rank_eval.packages.evaluation_framework.templates import (
    CachingQueryTemplateManager,
    FileQueryTemplateManager,
    TemplateNotFoundError,
    substitute_placeholders,
)


@pytest.fixture
def templates(tmp_path):
    folder = tmp_path / "templates"
    folder.mkdir()
    (folder / "default.json").write_text("base default", encoding="utf-8")
    (folder / "explicit.json").write_text("base explicit", encoding="utf-8")

    versioned = folder / "v2"
    versioned.mkdir()
    (versioned / "default.json").write_text("v2 default", encoding="utf-8")
    return folder


def test_missing_templates_folder_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        FileQueryTemplateManager(str(tmp_path / "nowhere"))


def test_default_template_from_base_folder(templates):
    manager = FileQueryTemplateManager(str(templates))
    assert manager.resolve("default.json", None, "v1") == "base default"


def test_explicit_template_wins_over_default(templates):
    manager = FileQueryTemplateManager(str(templates))
    assert manager.resolve("default.json", "explicit.json", "v1") == "base explicit"


def test_version_folder_overrides_base_folder(templates):
    manager = FileQueryTemplateManager(str(templates))
    assert manager.resolve("default.json", None, "v2") == "v2 default"


def test_version_token_in_template_name(templates):
    (templates / "query_v1.json").write_text("base v1", encoding="utf-8")
    manager = FileQueryTemplateManager(str(templates))

    assert manager.get_template_file(None, "query_${version}.json", "v1") == templates / "query_v1.json"
    assert manager.get_template_file(None, "query_${version}.json", "v2") == templates / "v2" / "query_v2.json"
    assert manager.resolve(None, "query_${version}.json", "v1") == "base v1"


def test_no_template_name_raises(templates):
    manager = FileQueryTemplateManager(str(templates))
    with pytest.raises(TemplateNotFoundError):
        manager.resolve(None, None, "v1")


def test_unreadable_template_raises(templates):
    manager = FileQueryTemplateManager(str(templates))
    with pytest.raises(TemplateNotFoundError):
        manager.resolve("missing.json", None, "v1")


def test_template_not_found_is_a_file_not_found_error():
    assert issubclass(TemplateNotFoundError, FileNotFoundError)


def test_caching_manager_reads_each_file_once(templates):
    manager = CachingQueryTemplateManager(str(templates))
    assert manager.resolve("default.json", None, "v1") == "base default"

    (templates / "default.json").write_text("changed", encoding="utf-8")

    assert manager.resolve("default.json", None, "v1") == "base default"
    assert manager.resolve("default.json", None, "v2") == "v2 default"


def test_substitute_placeholders_in_order():
    template = '{"query": "$query", "boost": $boost}'
    assert substitute_placeholders(template, {"$query": "laptop", "$boost": 2}) == '{"query": "laptop", "boost": 2}'


def test_non_string_placeholders_are_rendered_as_json():
    template = '{"in_stock": $stock, "min_price": $price, "brand": $brand}'
    placeholders = {"$stock": True, "$price": 1.5, "$brand": None}
    assert substitute_placeholders(template, placeholders) == '{"in_stock": true, "min_price": 1.5, "brand": null}'
