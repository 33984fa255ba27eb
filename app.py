from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="Bakery Inventory", page_icon="🥐", layout="wide")

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_📥_Daily_Stock_Check_In.py", title="Daily Stock Check-In", icon="📥"),
    st.Page("pages/2_📦_Inventory_View.py", title="Inventory", icon="📦"),
    st.Page("pages/3_🛒_Sales_FIFO.py", title="Sales", icon="🛒"),
    st.Page("pages/4_↩️_End_of_Day_Returns.py", title="End-of-Day Returns", icon="↩️"),
    st.Page("pages/5_🧪_Data_Management.py", title="Data Management", icon="🧪"),
    st.Page("pages/6_📊_Returns_Log.py", title="Returns Log", icon="📊"),
]

st.navigation(pages).run()
