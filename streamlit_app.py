"""
Streamlit frontend — HR360 resume screening dashboard
"""
import os
from collections import Counter

import requests
import streamlit as st
import pandas as pd
import plotly.express as px

# URL for the FastAPI backend
API = os.getenv("API_URL", "http://localhost:8000/api/v1")

STATUSES = ["applied", "screening", "interview", "offered", "hired", "rejected"]

st.set_page_config(
    page_title="HR360 Screening",
    page_icon="🧑‍💼",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── Sidebar ───────────────────────────────────────────────────────────────────
with st.sidebar:
    st.title("🧑‍💼 HR360")
    st.caption("Resume screening")
    st.markdown("---")
    page = st.radio("", [
        "👥 Candidates",
        "📄 Screen Resume",
        "📬 Email Monitor",
        "🔔 Notifications",
        "💬 Assistant",
    ])
    st.markdown("---")
    st.markdown("""
**Pipeline**
- 📬 IMAP inbox → PDF / Word CVs
- 🧠 OpenAI analysis (keyword fallback)
- ☁️ Cloudinary file storage
- 🗂 Elasticsearch candidates
""")


def api(method, path, **kwargs):
    try:
        fn = getattr(requests, method)
        r = fn(f"{API}{path}", timeout=90, **kwargs)
        r.raise_for_status()
        return r.json()
    except requests.exceptions.ConnectionError:
        st.error("⚠️ API not reachable")
        return None
    except requests.exceptions.HTTPError as e:
        detail = ""
        try:
            detail = e.response.json().get("detail", "")
        except ValueError:
            pass
        st.error(f"⚠️ {detail}" if detail else f"API error: {e}")
        return None
    except requests.exceptions.RequestException as e:
        st.error(f"API error: {e}")
        return None


def show_analysis(a: dict):
    st.metric("AI score", a.get("ai_score", "—"))
    if a.get("skills"):
        st.markdown("**Skills:** " + " ".join(f"`{s}`" for s in a["skills"]))
    st.markdown(f"**Experience:** {a.get('experience') or '—'}")
    st.markdown(f"**Education:** {a.get('education') or '—'}")
    c1, c2 = st.columns(2)
    c1.markdown("**Strengths**\n" + "\n".join(f"- {s}" for s in a.get("strengths") or []))
    c2.markdown("**Weaknesses**\n" + "\n".join(f"- {s}" for s in a.get("weaknesses") or []))
    if a.get("recommendation"):
        st.info(f"💬 {a['recommendation']}")
    if a.get("summary"):
        st.write(a["summary"])


# ── CANDIDATES ────────────────────────────────────────────────────────────────
if "👥 Candidates" in page:
    st.header("👥 Candidates")

    col1, col2, col3 = st.columns([3, 2, 2])
    search = col1.text_input("Search", placeholder="name, email or position")
    position = col2.text_input("Position (exact)")
    status = col3.selectbox("Status", ["all"] + STATUSES)

    params = {"search": search}
    if position:
        params["position"] = position
    if status != "all":
        params["status"] = status
    candidates = api("get", "/candidates", params=params) or []

    stats = api("get", "/emails/processing/stats")
    if stats:
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Candidates", stats["total_candidates"])
        m2.metric("Screening", stats["screening_candidates"])
        m3.metric("Applied", stats["applied_candidates"])
        m4.metric("Recent runs", stats["recent_processing"])

    if not candidates:
        st.info("No candidates yet.")
        st.stop()

    df = pd.DataFrame([{
        "Name": f"{c['first_name']} {c['last_name']}",
        "Email": c["email"],
        "Position": c["position"],
        "Status": c["status"],
        "AI score": c.get("ai_score"),
        "Applied": c["applied_at"][:16].replace("T", " "),
    } for c in candidates])
    st.dataframe(df, use_container_width=True, height=320)

    scored = df.dropna(subset=["AI score"])
    if not scored.empty:
        fig = px.histogram(scored, x="AI score", nbins=20, title="AI score distribution")
        fig.update_layout(height=300)
        st.plotly_chart(fig, use_container_width=True)

    st.subheader("Details")
    for c in candidates:
        label = f"{c['first_name']} {c['last_name']} — {c['position']} ({c['status']})"
        with st.expander(label):
            if c.get("resume_url"):
                st.markdown(f"[📎 Resume]({c['resume_url']})")
            show_analysis(c)
            new_status = st.selectbox(
                "Status", STATUSES, index=STATUSES.index(c["status"]), key=f"status_{c['id']}",
            )
            if new_status != c["status"] and st.button("Update status", key=f"upd_{c['id']}"):
                if api("patch", f"/candidates/{c['id']}/status", json={"status": new_status}):
                    st.success("✅ Status updated")
                    st.rerun()

    all_skills = [s for c in candidates for s in (c.get("skills") or [])]
    if all_skills:
        df_s = pd.DataFrame(Counter(all_skills).most_common(15), columns=["Skill", "Count"])
        fig = px.bar(df_s, x="Count", y="Skill", orientation="h", title="Top Skills",
                     color="Count", color_continuous_scale="Blues")
        fig.update_layout(height=450, yaxis={"categoryorder": "total ascending"})
        st.plotly_chart(fig, use_container_width=True)


# ── SCREEN RESUME ─────────────────────────────────────────────────────────────
elif "📄 Screen Resume" in page:
    st.header("📄 Screen a Resume")
    st.info("The resume is analyzed but not stored. Without an OpenAI key the keyword scorer is used.")

    f = st.file_uploader("PDF / DOC / DOCX", type=["pdf", "doc", "docx"])
    job = st.text_area("Job description (optional)", height=100)
    if f and st.button("🔍 Analyze", type="primary"):
        with st.spinner("Analyzing..."):
            res = api("post", "/resumes/analyze",
                      files={"file": (f.name, f.getvalue(), f.type)},
                      data={"job_description": job} if job else None)
        if res:
            info = res["candidate_info"]
            st.success(f"✅ {info['first_name']} {info['last_name']} — {res['text_length']} characters read")
            st.json(info)
            show_analysis(res["analysis"])


# ── EMAIL MONITOR ─────────────────────────────────────────────────────────────
elif "📬 Email Monitor" in page:
    st.header("📬 Email Monitor")

    status = api("get", "/emails/monitor/status")
    if status:
        c1, c2, c3 = st.columns(3)
        c1.metric("State", status["state"])
        c2.metric("Background task", "running" if status["running"] else "stopped")
        c3.metric("Cycles run", status["cycles_run"])

    if st.button("▶️ Check inbox now", type="primary"):
        with st.spinner("Processing inbox..."):
            report = api("post", "/emails/trigger")
        if report:
            if report["status"] == "skipped":
                st.warning("A cycle is already running.")
            elif report["status"] == "error":
                st.error(f"Mailbox error: {report.get('error')}")
            else:
                st.success(
                    f"✅ {report['succeeded']} CV(s) processed, {report['failed']} failed "
                    f"({report['fetched_messages']} message(s), {report['skipped_messages']} skipped)"
                )
            for failure in report.get("failures") or []:
                st.markdown(f"- ❌ **{failure['filename']}** ({failure['subject']}): {failure['error']}")

    with st.expander("⚙️ Mailbox configuration"):
        config = api("get", "/emails/config") or {}
        with st.form("email_config"):
            host = st.text_input("IMAP host", value=config.get("host", ""))
            port = st.number_input("Port", value=int(config.get("port", 993)), step=1)
            user = st.text_input("User", value=config.get("user", ""))
            password = st.text_input("Password", value=config.get("password", ""), type="password")
            tls = st.checkbox("TLS", value=config.get("tls", True))
            enabled = st.checkbox("Automatic monitoring", value=config.get("enabled", False))
            interval = st.number_input("Interval (minutes)", min_value=1,
                                       value=int(config.get("monitoring_interval", 5)))
            if st.form_submit_button("Save", type="primary"):
                res = api("put", "/emails/config", json={
                    "host": host, "port": int(port), "user": user, "password": password,
                    "tls": tls, "enabled": enabled, "monitoring_interval": int(interval),
                })
                if res:
                    st.success("✅ Saved")

    st.subheader("Processed emails")
    processed = api("get", "/emails/processed") or []
    if processed:
        st.dataframe(pd.DataFrame([{
            "Received": p["processed_at"][:16].replace("T", " "),
            "From": p["sender"],
            "Subject": p["subject"],
            "Attachments": p["attachments_processed"],
            "Candidates": p["candidates_created"],
            "Status": p["status"],
            "Error": p.get("error") or "",
        } for p in processed]), use_container_width=True)
    else:
        st.info("No emails processed yet.")


# ── NOTIFICATIONS ─────────────────────────────────────────────────────────────
elif "🔔 Notifications" in page:
    st.header("🔔 Notifications")
    user_id = st.text_input("User ID", value="user-hr")
    unread_only = st.checkbox("Unread only")

    notifications = api("get", f"/notifications/{user_id}", params={"unread_only": unread_only}) or []
    if not notifications:
        st.info("No notifications.")
    icons = {"success": "✅", "warning": "⚠️", "error": "❌", "info": "ℹ️"}
    for n in notifications:
        with st.container(border=True):
            st.markdown(f"{icons.get(n['type'], '')} **{n['title']}** · {n['created_at'][:16].replace('T', ' ')}")
            st.write(n["message"])
            if not n["is_read"] and st.button("Mark read", key=n["id"]):
                api("patch", f"/notifications/{n['id']}/read")
                st.rerun()


# ── ASSISTANT ─────────────────────────────────────────────────────────────────
elif "💬 Assistant" in page:
    st.header("💬 HR Assistant")
    role = st.selectbox("Role", ["employee", "hr", "admin", "candidate"])

    if "chat" not in st.session_state:
        st.session_state.chat = []
    for speaker, text in st.session_state.chat:
        st.chat_message(speaker).write(text)

    prompt = st.chat_input("Ask about leave, payroll, applications...")
    if prompt:
        st.session_state.chat.append(("user", prompt))
        res = api("post", "/assistant/chat", json={"message": prompt, "role": role})
        if res:
            st.session_state.chat.append(("assistant", res["reply"]))
        st.rerun()
