import os
import time
import html
import requests
import streamlit as st

# === Настройки ===
DEFAULT_API_URL = os.getenv("API_URL", "http://localhost:8000/api/ask")
APP_TITLE = "🤖 RAG Ask"
APP_DESC = "Задай вопрос, выбери стратегию (approach) — получи ответ, источники и ход мысли модели."

APPROACHES = {
    "Retrieve-Then-Read": "rtr",
    "Read-Retrieve-Read": "rrr",
}

# === Внешний вид ===
st.set_page_config(page_title=APP_TITLE, page_icon="🤖", layout="wide")
st.markdown(
    """
<style>
:root {
  --pri: #4F46E5;
  --radius: 12px;
}

.block-container { padding-top: 2rem; padding-bottom: 1rem; }
.small { font-size: 0.85rem; opacity: 0.85; }

@media (prefers-color-scheme: light) {
  .answer { background: #f8fafc; border: 1px solid #e5e7eb; color: #0f172a; border-radius: var(--radius); padding: 14px; }
  .ctx    { background: #f9fafb; border: 1px solid #e5e7eb; color: #111827; border-radius: 10px; padding: 12px; }
  .divider { border-top: 1px solid #e5e7eb; margin: 8px 0 16px 0; }
}

@media (prefers-color-scheme: dark) {
  .answer { background: #0b1220; border: 1px solid #1f2937; color: #e5e7eb; border-radius: var(--radius); padding: 14px; }
  .ctx    { background: #0f172a; border: 1px solid #243244; color: #e5e7eb; border-radius: 10px; padding: 12px; }
  .divider { border-top: 1px solid #1f2937; margin: 8px 0 16px 0; }
}
</style>
""",
    unsafe_allow_html=True,
)

# === Сайдбар: адрес API и overrides ===
with st.sidebar:
    st.markdown(f"### {APP_TITLE}")
    st.write(APP_DESC)
    api_url = st.text_input("API URL", value=DEFAULT_API_URL)
    approach_label = st.selectbox("Approach", list(APPROACHES.keys()))
    st.markdown("---")
    st.markdown("**Overrides**")
    retrieval_mode = st.selectbox("Retrieval mode", ["hybrid", "vectors", "text"])
    sk_mode = st.selectbox("Semantic kernel mode (rrr)", ["chains", "memory"])
    semantic_ranker = st.checkbox("Semantic ranker", value=False)
    semantic_captions = st.checkbox("Semantic captions", value=False)
    top = st.slider("Top documents", min_value=1, max_value=20, value=3)
    exclude_category = st.text_input("Exclude category", value="")
    prompt_template = st.text_area("Prompt template (префикс >>> — дописать к дефолтному)", value="")
    st.markdown("---")
    clear_btn = st.button("Очистить историю")

# === Состояние ===
if "history" not in st.session_state:
    # элементы: (question, approach, data|error, latency_sec, ok)
    st.session_state.history = []

if clear_btn:
    st.session_state.history.clear()

st.title(APP_TITLE)
st.caption("Ответ генерируется по найденным источникам; ниже показываем data points и thoughts.")

col_inp, col_btn = st.columns([4, 1])
with col_inp:
    user_q = st.text_input("Ваш вопрос:", placeholder="Например: What is included in my plan?")
with col_btn:
    ask_clicked = st.button("Спросить", type="primary", use_container_width=True)


def build_overrides() -> dict:
    return {
        "retrievalMode": retrieval_mode,
        "semanticKernelMode": sk_mode,
        "semanticRanker": semantic_ranker,
        "semanticCaptions": semantic_captions,
        "top": top,
        "excludeCategory": exclude_category.strip() or None,
        "promptTemplate": prompt_template.strip() or None,
    }


def call_api(question: str, approach: str, url: str) -> dict:
    """POST /api/ask. Возвращает dict с answer/dataPoints/thoughts либо ошибку."""
    body = {"question": question, "approach": approach, "overrides": build_overrides()}
    try:
        t0 = time.time()
        r = requests.post(url, json=body, timeout=60)
        latency = time.time() - t0
        if r.status_code == 200:
            data = r.json()
            data["_ok"] = True
            data["_latency"] = latency
            return data
        return {"_ok": False, "_latency": latency, "error": f"HTTP {r.status_code}: {r.text}"}
    except requests.RequestException as e:
        return {"_ok": False, "_latency": 0.0, "error": str(e)}


def thoughts_html(thoughts: str) -> str:
    """thoughts приходит с <br> вместо переводов строк: экранируем всё, кроме них."""
    return html.escape(thoughts).replace("&lt;br&gt;", "<br/>")


if ask_clicked and user_q.strip():
    approach = APPROACHES[approach_label]
    resp = call_api(user_q.strip(), approach, api_url)
    st.session_state.history.append((user_q.strip(), approach, resp, resp.get("_latency", 0.0), resp.get("_ok", False)))

# === Рендер истории (последние сверху) ===
for q, approach, resp, lat, ok in reversed(st.session_state.history):
    with st.container():
        st.markdown(f"**❓ Вопрос ({approach}):** {html.escape(q)}")
        if ok:
            answer_html = html.escape(resp.get("answer", "")).replace("\n", "<br/>")
            st.markdown(f"""<div class="answer"><b>✅ Ответ:</b><br/>{answer_html}</div>""", unsafe_allow_html=True)
            with st.expander("📚 Data points"):
                points = resp.get("dataPoints", [])
                if points:
                    for i, point in enumerate(points, start=1):
                        st.markdown(f"**[{i}]**")
                        st.markdown(f"<div class='ctx'>{html.escape(point)}</div>", unsafe_allow_html=True)
                else:
                    st.info("Источники не найдены.")
            with st.expander("💭 Thoughts"):
                st.markdown(f"<div class='ctx small'>{thoughts_html(resp.get('thoughts', ''))}</div>",
                            unsafe_allow_html=True)
            st.caption(f"⏱ Время ответа: {lat:.2f} c • API: {api_url}")
        else:
            st.error(f"Ошибка: {resp.get('error', 'unknown')}")
            st.caption(f"⏱ Попытка запроса заняла: {lat:.2f} c • API: {api_url}")
        st.markdown("<div class='divider'></div>", unsafe_allow_html=True)
