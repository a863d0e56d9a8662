import csv
import json

import pytest

from receipt_understanding.cli.main import build_parser, main


@pytest.fixture
def receipt_file(tmp_path, sample_text):
    path = tmp_path / "walmart.txt"
    path.write_text(sample_text, encoding="utf-8")
    return path


@pytest.fixture
def rules_path(tmp_path):
    return tmp_path / "rules.json"


def test_parse_and_write_outputs(tmp_path, receipt_file, rules_path, capsys):
    out_json = tmp_path / "receipts.json"
    out_csv = tmp_path / "items.csv"

    code = main([str(receipt_file), "--rules", str(rules_path), "--user-id", "u-1",
                 "--output", str(out_json), "--csv", str(out_csv)])

    assert code == 0
    out = capsys.readouterr().out
    assert "[INFO] Using 6 store template(s)" in out
    assert "walmart.txt: 2023-01-15 | Walmart | $14.78 | 2 item(s)" in out
    assert "Produce: $4.17" in out

    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data[0]["receipt"]["user_id"] == "u-1"
    with out_csv.open(newline="", encoding="utf-8") as f:
        assert [line["item"] for line in csv.DictReader(f)] == ["Apple", "Bananas"]


def test_threshold_flags_receipts(receipt_file, rules_path, capsys):
    assert main([str(receipt_file), "--rules", str(rules_path), "--threshold", "0.99"]) == 0
    assert "[REVIEW]" in capsys.readouterr().out


def test_no_templates(receipt_file, rules_path, capsys):
    assert main([str(receipt_file), "--rules", str(rules_path), "--no-templates"]) == 0
    out = capsys.readouterr().out
    assert "[INFO] Using 0 store template(s)" in out
    assert "| WALMART |" in out


def test_custom_templates(tmp_path, receipt_file, rules_path, capsys):
    templates = tmp_path / "templates.json"
    templates.write_text(json.dumps([
        {"storeName": "Walmart Neighborhood", "storePatterns": ["walmart", "(broken"]},
    ]))
    assert main([str(receipt_file), "--rules", str(rules_path), "--templates", str(templates)]) == 0
    out = capsys.readouterr().out
    assert "[INFO] Using 1 store template(s)" in out
    assert "[WARN] 1 invalid template pattern(s) were skipped" in out
    assert "Walmart Neighborhood" in out


@pytest.mark.parametrize("content", ["{not json", json.dumps([{"storePatterns": ["x"]}])])
def test_bad_templates_file(tmp_path, receipt_file, rules_path, capsys, content):
    templates = tmp_path / "templates.json"
    templates.write_text(content)
    assert main([str(receipt_file), "--rules", str(rules_path), "--templates", str(templates)]) == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_bad_rules_file(tmp_path, receipt_file, capsys):
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps({"settings": {"no_such_setting": 1}}))
    assert main([str(receipt_file), "--rules", str(rules)]) == 1
    assert "Unknown settings: no_such_setting" in capsys.readouterr().out


def test_inputs_are_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
