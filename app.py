import json
import logging
import os
import tempfile

import pandas as pd
import streamlit as st

from data_alchemist.backend import DataManager
from data_alchemist.config import get_settings
from data_alchemist.models import ENTITY_FIELDS, IngestError, Rule
from data_alchemist.priorities import (
    CRITERIA,
    CRITERIA_NAMES,
    DEFAULT_WEIGHTS,
    PAIRWISE_SCALE,
    PRESET_DESCRIPTIONS,
    PRESETS,
    pair_key,
)

logging.basicConfig(level=get_settings().log_level)

st.set_page_config(page_title="Data Alchemist Dashboard", layout="wide")
st.title("🧪 Data Alchemist - AI-Powered Data Manager")

# Instantiate DataManager (singleton in session state)
if "dm" not in st.session_state:
    st.session_state.dm = DataManager()

dm: DataManager = st.session_state.dm


def save_uploaded(uploaded_file) -> str:
    suffix = os.path.splitext(uploaded_file.name)[1]
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        tmp.write(uploaded_file.getbuffer())
        return tmp.name


def show_findings(result):
    if result.is_valid and not result.warnings:
        st.success("No validation issues found!")
        return
    if result.errors:
        st.error(f"Found {len(result.errors)} errors")
    if result.warnings:
        st.warning(f"Found {len(result.warnings)} warnings")
    rows = []
    for finding in result.findings:
        item = finding.to_dict()
        location = item["cellLocation"] or {}
        rows.append({
            "severity": item["severity"],
            "type": item["type"],
            "message": item["message"],
            "entity": location.get("entity"),
            "row": location.get("row"),
            "column": location.get("column"),
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True)


with st.sidebar:
    st.header("1. Load Data")
    uploads = {
        entity: st.file_uploader(f"Upload {entity} file", type=["csv", "xlsx"], key=entity)
        for entity in ENTITY_FIELDS
    }

    if st.button("Load Uploaded Files"):
        if all(uploads.values()):
            try:
                paths = {entity: save_uploaded(f) for entity, f in uploads.items()}
                dm.load_files(
                    paths["clients"], paths["workers"], paths["tasks"],
                    {entity: f.name for entity, f in uploads.items()}
                )
                st.success("All files loaded successfully!")
            except IngestError as e:
                st.error(str(e))
        else:
            st.error("Please upload all three files before loading.")

    if st.button("Load Sample Data"):
        dm.load_sample_data()
        st.success("Sample data loaded")

    st.markdown("---")
    st.header("2. Set Priority Weights")
    method = st.radio("Method", ["sliders", "ranking", "pairwise"], horizontal=True)
    preset = st.selectbox("Preset profile", ["(none)"] + list(PRESETS),
                          help="Applying a preset switches back to sliders")
    if preset != "(none)":
        st.caption(PRESET_DESCRIPTIONS[preset])

    slider_weights, ranking, pairwise = None, None, {}
    if method == "sliders":
        slider_weights = {
            criterion: st.slider(CRITERIA_NAMES[criterion], 0, 100, default)
            for criterion, default in DEFAULT_WEIGHTS.items()
        }
    elif method == "ranking":
        ranking = st.multiselect("Most important first", CRITERIA, default=CRITERIA,
                                 format_func=CRITERIA_NAMES.get)
    else:
        for i, first in enumerate(CRITERIA):
            for second in CRITERIA[i + 1:]:
                label = st.selectbox(f"{CRITERIA_NAMES[first]} vs {CRITERIA_NAMES[second]}",
                                     list(PAIRWISE_SCALE), index=4, key=pair_key(first, second))
                pairwise[pair_key(first, second)] = PAIRWISE_SCALE[label]

    if st.button("Set Priorities"):
        try:
            dm.set_priorities(
                slider_weights, method=method,
                preset=None if preset == "(none)" else preset,
                ranking=ranking, pairwise=pairwise,
            )
            st.success(f"Priorities set ({dm.priorities['method']})")
            st.json(dm.priorities["weights"])
        except ValueError as e:
            st.error(str(e))


# --- Main workspace ---
if not dm.has_data:
    st.info("Load your clients, workers and tasks files (or the sample data) to begin.")
    st.stop()

st.header("3. Data")
for tab, entity in zip(st.tabs(list(ENTITY_FIELDS)), ENTITY_FIELDS):
    with tab:
        st.dataframe(pd.DataFrame(dm.rows(entity)), use_container_width=True)

st.header("4. Data Validation")
if st.button("Run Validation"):
    show_findings(dm.validate_all())

if dm.last_result is not None and dm.last_result.findings:
    findings = list(dm.last_result.findings)
    picked = st.selectbox("Suggest a fix for", range(len(findings)),
                          format_func=lambda i: findings[i].message)
    if st.button("Suggest Fix"):
        with st.spinner("Asking for corrections..."):
            suggestions = dm.suggest_corrections(picked)
        if suggestions:
            st.dataframe(pd.DataFrame(suggestions), use_container_width=True)
        else:
            st.info("No suggestions available (AI not configured or no answer)")

st.markdown("---")
st.header("5. Natural Language Search")
search_entity = st.selectbox("Search in", list(ENTITY_FIELDS), index=2)
nl_query = st.text_input("Enter a search query (e.g. 'duration > 2')")

if st.button("Search"):
    if not nl_query.strip():
        st.warning("Please enter a query")
    else:
        response = dm.natural_language_search(nl_query, search_entity)
        st.caption(f"Filter ({response['source']}): {response['filters']}")
        if response["results"]:
            st.write(f"Found {len(response['results'])} matching rows:")
            st.dataframe(pd.DataFrame(response["results"]), use_container_width=True)
        else:
            st.info("No results found")

st.markdown("---")
st.header("6. Business Rules")

tab1, tab2, tab3 = st.tabs(["Add Rule", "Recommendations", "Current Rules"])

with tab1:
    new_rule_input = st.text_area("Describe your rule:",
                                  placeholder="e.g., Tasks T1 and T5 should co-run")
    if st.button("Add Rule", type="primary"):
        if new_rule_input.strip():
            with st.spinner("Creating rule..."):
                rule = dm.add_rule_from_nl(new_rule_input.strip())
            if rule is None:
                st.error("Could not understand that rule. Try rephrasing it.")
            else:
                st.success(f"Rule {rule.id} created")
                st.json(rule.to_dict())

with tab2:
    if st.button("Get Recommendations"):
        dm.get_recommended_rules()
    if not dm.recommendations:
        st.info("No recommendations yet")
    for i, recommendation in enumerate(list(dm.recommendations)):
        col1, col2 = st.columns([4, 1])
        col1.write(f"**{recommendation.type.value}** ({recommendation.confidence:.0%}): {recommendation.description}")
        if col2.button("Accept", key=f"accept_{i}"):
            rule = dm.accept_recommendation(i)
            st.success(f"Rule {rule.id} added")
            st.rerun()

with tab3:
    rules = list(dm.rule_set)
    if not rules:
        st.info("No rules defined")
    for rule in rules:
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.write(f"**{rule.id}** ({'Active' if rule.is_active else 'Inactive'}): {rule.description}")
        if col2.button("Toggle", key=f"toggle_{rule.id}"):
            dm.update_rule(rule.id, is_active=not rule.is_active)
            st.rerun()
        if col3.button("Delete", key=f"delete_{rule.id}"):
            dm.remove_rule(rule.id)
            st.rerun()

    rule_json = st.text_area("Or paste a rule as JSON", placeholder='{"type": "coRun", "parameters": {"tasks": ["T1", "T5"]}}')
    if st.button("Add JSON Rule") and rule_json.strip():
        try:
            dm.add_rule(Rule.from_dict(json.loads(rule_json)))
            st.rerun()
        except (KeyError, ValueError) as e:
            st.error(f"Invalid rule: {e}")

st.markdown("---")
st.header("7. Export Data & Rules")

if st.button("Export All to CSV/JSON"):
    files = dm.export_all()
    st.success(f"Exported {len(files)} files to folder: {dm.settings.export_dir}")
    for item in files:
        with open(item["path"], "rb") as f:
            st.download_button(f"Download {item['name']}", f.read(), file_name=item["name"], key=item["name"])
