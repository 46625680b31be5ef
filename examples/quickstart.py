import logging
import numpy as np
import pandas as pd
from time import perf_counter
from j48sspy import J48SSClassifier

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

rng = np.random.default_rng(0)
n = 200

# sessions: visitors who put an item in the cart and then pay are buyers
labels = rng.random(n) < 0.4
events, signals = [], []
for buyer in labels:
    steps = ["home"] + list(rng.choice(["search", "view", "home"], size=rng.integers(1, 4)))
    if buyer:
        steps += ["cart", "pay"]
    else:
        steps += list(rng.choice(["view", "cart", "exit"], size=2))
    events.append(">".join(steps))
    # buyers linger: a plateau somewhere in their activity curve
    curve = rng.normal(0.0, 0.3, size=24)
    if buyer:
        start = rng.integers(0, 18)
        curve[start:start + 6] += 3.0
    signals.append(",".join(f"{v:.3f}" for v in curve))

df = pd.DataFrame({
    "device": rng.choice(["mobile", "desktop", "tablet"], size=n),
    "duration": np.round(rng.gamma(2.0, 60.0, size=n), 1),
    "SEQ_clicks": events,
    "TS_activity": signals,
})
y = np.where(labels, "buy", "leave")

clf = J48SSClassifier(
    categorical_features=["device"],
    min_support=0.3, max_gap=2, pattern_weight=0.75,
    population_size=40, num_evaluations=200,
    random_state=42, verbose=1,
)

t0 = perf_counter(); clf.fit(df, y); print(f"fit: {perf_counter()-t0:.3f} s")
print(clf.export_text())
print(f"training accuracy: {clf.score(df, y):.3f}")

# weight each session carries into every node of the tree
members = clf.membership_values(df.head(3))
print(members.round(2))
