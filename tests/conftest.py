import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add the project root directory to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

EGO_COLUMNS = ["sex", "race", "age", "partyid", "relig", "numgiven"]
ALTER_FIELDS = ["sex", "race", "age", "relig", "educ"]
TIE_COLUMNS = [f"close{i}{j}" for i in range(1, 6) for j in range(i + 1, 6)]


def survey_columns():
    alter_columns = [f"{name}{slot}" for name in ALTER_FIELDS for slot in range(1, 6)]
    return EGO_COLUMNS + alter_columns + TIE_COLUMNS


def make_survey(rows):
    """Wide survey frame; every absent column is all-missing."""
    return pd.DataFrame(rows).reindex(columns=survey_columns())


@pytest.fixture
def survey_rows():
    return [
        # ego 1: three alters, one tie between slots 1 and 2
        dict(sex="male", race="white", age=45, partyid="democrat", relig="protestant", numgiven=3,
             sex1="female", race1="white", age1=40, relig1="protestant", educ1=16,
             sex2="male", race2="black", age2=38, relig2="catholic", educ2="college",
             sex3="female", race3="white", age3=70, relig3="protestant", educ3="high school",
             close12=2, close13=0),
        # named nobody: no ego id
        dict(sex="female", race="black", age=30, partyid="independent", relig="none", numgiven=0,
             sex1="male", race1="black", age1=31),
        # ego 2: two alters, one real tie and one tie to an empty slot
        dict(sex="female", race="black", age=52, partyid="republican", relig="catholic", numgiven=2,
             sex1="female", race1="black", age1=50, relig1="catholic",
             sex2="male", race2="white", age2=np.nan, relig2="catholic",
             close12=1, close34=3),
        # ego 3: nominated someone but every alter field is empty
        dict(sex="male", race="other", age=29, partyid="democrat", relig="jewish", numgiven=1,
             educ1=12),
    ]


@pytest.fixture
def survey(survey_rows):
    return make_survey(survey_rows)


@pytest.fixture
def survey_factory():
    return make_survey
