from __future__ import annotations

import pytest

from agent.errors import UpstreamServiceError
from agent.llm.base import LLMResponse
from data_ops.output_structuring import parse_table, strip_code_fences, structure_output, table_to_edits

from .conftest import FakeAdapter


def test_strip_code_fences_keeps_inner_text() -> None:
    assert strip_code_fences("```csv\na,b\n1,2\n```") == "a,b\n1,2"
    assert strip_code_fences("") == ""


def test_parse_table_handles_csv_and_whitespace() -> None:
    text = 'Metric,Value\n"Mean, overall",4.5\n\nmedian   3\nmax\t9'
    assert parse_table(text) == [
        ["Metric", "Value"],
        ["Mean, overall", "4.5"],
        ["median", "3"],
        ["max", "9"],
    ]


def test_table_to_edits_crosses_column_z() -> None:
    edits = table_to_edits([["a", "", "c"], ["d"]], "Y10", sheet="Out")
    assert [(e.target, e.formula) for e in edits] == [("Y10", "a"), ("AA10", "c"), ("Y11", "d")]
    assert all(e.sheet == "Out" for e in edits)


@pytest.mark.asyncio
async def test_structure_output_uses_the_model_reply() -> None:
    adapter = FakeAdapter([LLMResponse(text="```\nStat,Value\nmean,2\n```")])
    structured = await structure_output(adapter, "m", "mean is 2", "average")
    assert structured == "Stat,Value\nmean,2"
    assert adapter.calls[0]["model"] == "m"
    assert "Analysis Goal: average" in adapter.calls[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_structure_output_falls_back_to_raw_text() -> None:
    failing = FakeAdapter([UpstreamServiceError("down", provider="fake")])
    assert await structure_output(failing, "m", "mean  2", "g") == "mean  2"

    empty = FakeAdapter([LLMResponse(text="")])
    assert await structure_output(empty, "m", "mean  2", "g") == "mean  2"

    assert await structure_output(FakeAdapter(), "m", "   ", "g") == ""
