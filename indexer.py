import os
import pandas as pd, numpy as np, faiss, pickle
from FlagEmbedding import BGEM3FlagModel
from rank_bm25 import BM25Okapi

from app.config import settings
from app.rag import tokenize

CSV_PATH = os.getenv("DOCS_CSV_PATH", "data/docs.csv")  # колонки: source, content, category

# === 1. Загружаем данные
df = pd.read_csv(CSV_PATH).fillna("")
records = [
    {
        "source": str(r.get("source", "")).strip(),
        "content": str(r.get("content", "")).strip(),
        "category": str(r.get("category", "")).strip() or None,
    }
    for r in df.to_dict(orient="records")
]

corpus = [r["content"] for r in records]

# === 2. Эмбеддинги (BGE-M3, мультиязычная)
model = BGEM3FlagModel(settings.embedding_model, use_fp16=True)
enc = model.encode(corpus, batch_size=32)
emb = np.array(enc["dense_vecs"]).astype("float32")
faiss.normalize_L2(emb)

# === 3. FAISS (inner product по L2-нормированным векторам)
index = faiss.IndexFlatIP(emb.shape[1])
index.add(emb)

# === 4. BM25 по тем же текстам
bm25 = BM25Okapi([tokenize(doc) for doc in corpus])

# === 5. Сохранение артефактов
with open(settings.meta_path, "wb") as f:
    pickle.dump(records, f)

faiss.write_index(index, settings.index_path)

with open(settings.bm25_path, "wb") as f:
    pickle.dump({"bm25": bm25, "corpus": corpus}, f)

print(f"✅ Индексация завершена: {len(records)} документов, FAISS + BM25 готовы")
