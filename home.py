from __future__ import annotations

import streamlit as st

from bakery.app_context import get_app_context
from bakery.db import get_conn
from bakery.services.demo_data import upsert_reference_data

st.set_page_config(page_title="Bakery Inventory", page_icon="🥐", layout="wide")

st.title("🥐 Bakery Inventory")
st.caption("Batch-based perishable stock: dated batches, FIFO sales, and end-of-day returns at a percentage of cost.")

ctx = get_app_context()
conn = get_conn(ctx.settings.db_path)
upsert_reference_data(conn)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{ctx.settings.data_dir}`")
    st.write(f"**Database:** `{ctx.settings.db_path.name}`")

st.info(
    "Use the left sidebar navigation. Start with **🧪 Data Management** to load demo data, then try "
    "**Daily Stock Check-In**, **Sales**, and **End-of-Day Returns**.",
    icon="ℹ️",
)
