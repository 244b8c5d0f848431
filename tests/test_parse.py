import numpy as np
import pandas as pd
import pytest

from parse import (
    blank_to_missing,
    check_alter_types,
    classify_columns,
    infer_kind,
    load_survey,
    validate_survey,
)
from survey_schema import DEFAULT_SCHEMA, FieldSpec, SchemaError, SurveySchema, load_schema


def test_classify_columns_by_name(survey):
    columns = list(survey.columns) + ["wtssall", "sex6", "closeness", "close16"]
    groups = classify_columns(columns, DEFAULT_SCHEMA)

    assert groups.ego == ["sex", "race", "age", "partyid", "relig", "numgiven"]
    assert list(groups.alter) == ["sex", "race", "age", "relig", "educ"]
    assert groups.alter["age"] == {1: "age1", 2: "age2", 3: "age3", 4: "age4", 5: "age5"}
    assert groups.ties[(1, 2)] == "close12"
    assert groups.ties[(4, 5)] == "close45"
    assert len(groups.ties) == 10
    # slot 6 and unknown names are not errors, just unmatched
    assert set(groups.unmatched) == {"wtssall", "sex6", "closeness", "close16"}


def test_classify_missing_pattern_gives_empty_selection():
    groups = classify_columns(["sex", "numgiven", "friend1", "tie12"], DEFAULT_SCHEMA)
    assert groups.alter == {}
    assert groups.ties == {}
    assert groups.unmatched == ["friend1", "tie12"]


def test_infer_kind():
    assert infer_kind(pd.Series([1, 2, np.nan])) == "numeric"
    assert infer_kind(pd.Series(["3", "4", None])) == "numeric"
    assert infer_kind(pd.Series(["college", None])) == "categorical"
    assert infer_kind(pd.Series([np.nan, np.nan])) is None


def test_inconsistent_field_is_excluded(survey):
    schema = DEFAULT_SCHEMA.model_copy(update={"excluded_fields": []})
    groups = classify_columns(survey.columns, schema)
    excluded = check_alter_types(survey, groups, schema)

    assert list(excluded) == ["educ"]
    assert "educ1=numeric" in excluded["educ"]
    assert "educ2=categorical" in excluded["educ"]


def test_numeric_field_with_labels_is_excluded(survey):
    survey["age1"] = survey["age1"].astype(object)
    survey.loc[0, "age1"] = "forty"
    survey["age2"] = survey["age2"].astype(object)
    survey.loc[0, "age2"] = "thirty"
    survey["age3"] = "old"
    survey.loc[1:, ["age1", "age2", "age3"]] = np.nan

    _, _, report = validate_survey(survey, DEFAULT_SCHEMA)
    assert report.excluded_fields["age"] == "declared numeric but holds categorical values"


def test_validate_survey_types_and_report(survey):
    typed, groups, report = validate_survey(survey.drop(columns=["close45", "race5"]), DEFAULT_SCHEMA)

    assert report.excluded_fields == {"educ": "excluded by schema"}
    assert report.missing_columns == ["race5", "close45"]
    assert "race5" in typed.columns and typed["race5"].isna().all()
    assert pd.api.types.is_float_dtype(typed["age4"])
    assert typed["sex5"].dtype == object
    assert groups.alter["race"][5] == "race5"


def test_labelled_tie_column_is_reported(survey, capsys):
    survey["close12"] = survey["close12"].map({2: "especially close", 1: "know each other"})
    _, groups, report = validate_survey(survey, DEFAULT_SCHEMA, verbose=True)

    assert list(report.excluded_ties) == ["close12"]
    assert (1, 2) not in groups.ties
    assert (3, 4) in groups.ties
    assert "Tie column 'close12' left out" in capsys.readouterr().out


def test_blank_strings_become_missing():
    wide = pd.DataFrame({"sex1": ["female", "", "  "], "age1": [40.0, np.nan, 31.0]})
    cleaned = blank_to_missing(wide)

    assert cleaned["sex1"].tolist()[0] == "female"
    assert cleaned["sex1"].iloc[1:].isna().all()
    assert cleaned["age1"].tolist()[0] == 40.0
    assert wide["sex1"].tolist() == ["female", "", "  "]


def test_ego_alter_encoding_mismatch_is_reported(survey, capsys):
    survey["race"] = [1, 2, 2, 3]
    fields = [f.model_copy(update={"ego_codes": None}) for f in DEFAULT_SCHEMA.ego_fields]
    uncoded = DEFAULT_SCHEMA.model_copy(update={"ego_fields": fields})

    _, _, report = validate_survey(survey, uncoded, verbose=True)
    assert report.encoding_mismatches == {"race": "is numeric but its alter columns are categorical"}
    assert "Ego field 'race'" in capsys.readouterr().out

    # the default schema declares GSS race codes, so nothing to flag
    _, _, report = validate_survey(survey, DEFAULT_SCHEMA)
    assert report.encoding_mismatches == {}


def test_validate_survey_requires_ego_columns(survey):
    with pytest.raises(SchemaError, match="partyid"):
        validate_survey(survey.drop(columns=["partyid"]), DEFAULT_SCHEMA)


def test_validate_survey_rejects_existing_id_column(survey):
    survey["ego_id"] = range(len(survey))
    with pytest.raises(SchemaError):
        validate_survey(survey, DEFAULT_SCHEMA)


def test_schema_checks_tracked_fields():
    with pytest.raises(ValueError):
        SurveySchema(
            ego_fields=[FieldSpec(name="numgiven", kind="numeric")],
            alter_fields=[FieldSpec(name="sex", kind="categorical")],
            tracked_fields=["age"],
        )


def test_schema_rejects_non_letter_alter_field():
    with pytest.raises(ValueError):
        SurveySchema(
            ego_fields=[FieldSpec(name="numgiven", kind="numeric")],
            alter_fields=[FieldSpec(name="sex_", kind="categorical")],
            tracked_fields=["sex_"],
        )


def test_schema_helpers():
    assert DEFAULT_SCHEMA.tie_columns()[(2, 5)] == "close25"
    assert len(DEFAULT_SCHEMA.tie_columns()) == 10
    assert [f.name for f in DEFAULT_SCHEMA.retained_alter_fields] == ["sex", "race", "age", "relig"]


def test_load_schema_from_json(tmp_path):
    path = tmp_path / "schema.json"
    path.write_text(DEFAULT_SCHEMA.model_copy(update={"max_alters": 3}).model_dump_json())
    assert load_schema(str(path)).max_alters == 3

    path.write_text('{"ego_fields": []}')
    with pytest.raises(SchemaError):
        load_schema(str(path))


def test_load_survey_csv(tmp_path, survey):
    path = tmp_path / "survey.csv"
    survey.to_csv(path, index=False)
    loaded = load_survey(str(path))
    assert list(loaded.columns) == list(survey.columns)
    assert len(loaded) == len(survey)
