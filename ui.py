import time
import requests
import streamlit as st

st.set_page_config(page_title="Newsdesk Dispatch Console", layout="wide")

API_BASE = st.sidebar.text_input("API Base URL", value="http://127.0.0.1:8000")
st.sidebar.markdown("---")

st.title("Newsdesk Dispatch Console")
st.caption("Field task dispatch over WhatsApp • reply classification • lifecycle • reminders & escalation")

def call_post(path: str, payload: dict | None = None, timeout: int = 20):
    url = f"{API_BASE}{path}"
    r = requests.post(url, json=payload, timeout=timeout)
    return r

def call_get(path: str, timeout: int = 20):
    url = f"{API_BASE}{path}"
    r = requests.get(url, timeout=timeout)
    return r

def fake_inbound(phone: str, text: str) -> dict:
    # same shape as a WhatsApp Cloud API webhook delivery
    return {
        "entry": [{
            "id": "console",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "contacts": [{"wa_id": phone, "profile": {"name": "Console"}}],
                    "messages": [{
                        "from": phone,
                        "id": f"console.{int(time.time() * 1000)}",
                        "timestamp": str(int(time.time())),
                        "type": "text",
                        "text": {"body": text},
                    }],
                },
            }],
        }],
    }

colA, colB = st.columns([2, 1])

with colB:
    st.subheader("Quick Actions")
    if st.button("✅ Check API /health"):
        try:
            r = call_get("/health")
            st.write("Status:", r.status_code)
            st.json(r.json())
        except Exception as e:
            st.error("Backend not reachable. Start uvicorn.")
            st.exception(e)

    if st.button("⏰ Run reminder / escalation sweep"):
        try:
            r = call_post("/escalation/sweep", {})
            st.write("Status:", r.status_code)
            st.write("X-Request-Id:", r.headers.get("X-Request-Id"))
            st.json(r.json())
        except Exception as e:
            st.error("Sweep failed. Check backend logs.")
            st.exception(e)

with colA:
    tab1, tab2, tab3 = st.tabs(["Classify Reply", "Tasks", "Simulate WhatsApp Reply"])

    # ----------------- Tab 1: Classify -----------------
    with tab1:
        st.subheader("How would this reply be read?")
        text = st.text_area("Employee reply", value="Got it, on my way. Need BD 5 for parking.", height=90)

        if st.button("Classify", type="primary"):
            try:
                r = call_post("/classify", {"text": text})
                data = r.json()
                left, right = st.columns(2)
                with left:
                    st.metric("Action", data.get("action"))
                    st.metric("Confidence", f"{data.get('confidence', 0.0):.2f}")
                    if data.get("ambiguous"):
                        st.warning("Lone ✅: read as ACCEPT, or COMPLETE if the task is already in progress.")
                with right:
                    st.subheader("Extracted")
                    st.json(data.get("extracted_info") or {})
            except Exception as e:
                st.error("Backend not reachable. Start uvicorn and ensure API Base URL is correct.")
                st.exception(e)

    # ----------------- Tab 2: Tasks -----------------
    with tab2:
        st.subheader("Create and dispatch")
        title = st.text_input("Title", value="Cover the council press conference")
        description = st.text_area("Description", value="Photos + 300 words by 5pm.", height=70)
        phone = st.text_input("Assignee WhatsApp number", value="97312345678")
        name = st.text_input("Assignee name", value="")

        if st.button("Create task"):
            try:
                r = call_post("/tasks", {
                    "title": title,
                    "description": description,
                    "assignee_phone": phone,
                    "assignee_name": name or None,
                    "creator_id": "console",
                })
                st.write("Status:", r.status_code)
                st.json(r.json())
            except Exception as e:
                st.error("Task creation failed.")
                st.exception(e)

        st.markdown("---")
        task_id = st.text_input("Task ID", value="")
        action = st.selectbox("Action", ["dispatch", "approve", "send-back", "cancel"], index=0)
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Apply", type="primary") and task_id:
                r = call_post(f"/tasks/{task_id}/{action}")
                st.write("Status:", r.status_code)
                st.json(r.json())
        with c2:
            if st.button("Show task") and task_id:
                st.json(call_get(f"/tasks/{task_id}").json())
                st.subheader("Notifications")
                st.json(call_get(f"/tasks/{task_id}/notifications").json())
                st.subheader("Thread")
                st.json(call_get(f"/tasks/{task_id}/messages").json())

    # ----------------- Tab 3: Simulate reply -----------------
    with tab3:
        st.subheader("Post a reply through the webhook")
        st.caption("Goes through the same path as a real WhatsApp delivery.")
        sim_phone = st.text_input("From", value="97312345678", key="sim_phone")
        sim_text = st.text_input("Message", value="Accept", key="sim_text")

        if st.button("Send reply", type="primary"):
            try:
                r = call_post("/webhooks/whatsapp", fake_inbound(sim_phone, sim_text))
                st.write("Status:", r.status_code)
                st.write("X-Request-Id:", r.headers.get("X-Request-Id"))
                st.json(r.json())
            except Exception as e:
                st.error("Backend not reachable. Start uvicorn and ensure API Base URL is correct.")
                st.exception(e)
