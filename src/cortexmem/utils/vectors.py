import uuid
import time
import json
import struct
import numpy as np
from typing import List, Union, Any, Sequence

def now() -> int:
    return int(time.time() * 1000)

def rid() -> str:
    return str(uuid.uuid4())

def cos_sim(a: Union[List[float], np.ndarray], b: Union[List[float], np.ndarray]) -> float:
    if isinstance(a, list): a = np.array(a, dtype=np.float32)
    if isinstance(b, list): b = np.array(b, dtype=np.float32)
    if a.shape != b.shape: return 0.0

    dot = float(np.dot(a, b))
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))

    d = na * nb
    return dot / d if d else 0.0

def cos_scan(q: Sequence[float], vecs: List[Sequence[float]]) -> np.ndarray:
    """Cosine of q against every row; rows of a different dimension score 0."""
    qv = np.asarray(q, dtype=np.float32)
    out = np.zeros(len(vecs), dtype=np.float32)
    qn = float(np.linalg.norm(qv))
    if not len(vecs) or qn == 0: return out
    for i, v in enumerate(vecs):
        if len(v) != len(qv): continue
        vv = np.asarray(v, dtype=np.float32)
        vn = float(np.linalg.norm(vv))
        if vn: out[i] = float(np.dot(qv, vv)) / (qn * vn)
    return out

def j(x: Any) -> str:
    return json.dumps(x)

def vec_to_buf(v: List[float]) -> bytes:
    # float32 array to bytes
    return struct.pack(f"{len(v)}f", *v)

def buf_to_vec(buf: bytes) -> List[float]:
    cnt = len(buf) // 4
    return list(struct.unpack(f"{cnt}f", buf))
