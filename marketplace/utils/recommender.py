# marketplace/utils/recommender.py
# 技能比對：完全相同的技能 + Levenshtein 模糊比對
import Levenshtein
from typing import Dict, List, Set

# 模糊比對的門檻
SIMILARITY_THRESHOLD = 0.7


# (輔助函式) 取得兩個字串的 Levenshtein 相似度 (0.0 ~ 1.0)
def _get_string_similarity(s1: str, s2: str) -> float:
    # Levenshtein.distance 算出的是 "編輯距離" (差多少)
    # 標準化為 "相似度"，1.0 表示完全相同
    if not s1 or not s2:
        return 0.0
    distance = Levenshtein.distance(s1.lower(), s2.lower())
    max_len = max(len(s1), len(s2))
    return 1.0 - (distance / max_len)


def normalize_skills(skills) -> Set[str]:
    """去掉空白、轉小寫 (e.g., ' React ' -> 'react')"""
    return {skill.strip().lower() for skill in skills or [] if skill and skill.strip()}


def calculate_match_scores(
    # 'source_skill_names' (e.g., 查詢條件中的技能)
    source_skill_names: Set[str],
    # 'target_items' (e.g., 所有案件)，每個 item 為
    # {"item_id": ..., "skill_names": set, "item_object": ..., "tiebreaker": float}
    target_items: List[Dict],
) -> List[Dict]:
    """
    計算來源 (Source) 與所有目標 (Target) 的技能匹配分數，分數為 0 的目標不會出現在結果中
    """

    matches = []

    if not source_skill_names:
        return []

    for item in target_items:
        item_skill_names = item.get("skill_names", set())
        if not item_skill_names:
            continue

        total_score = 0.0

        # 1. (標籤重疊度)
        exact_matches = source_skill_names.intersection(item_skill_names)
        total_score += len(exact_matches) * 1.0

        # 2. (Levenshtein 相似度)
        source_fuzzy_tags = source_skill_names - exact_matches
        item_fuzzy_tags = item_skill_names - exact_matches

        for s_tag in source_fuzzy_tags:
            best_match_score = 0.0
            for i_tag in item_fuzzy_tags:
                similarity = _get_string_similarity(s_tag, i_tag)
                if similarity > SIMILARITY_THRESHOLD:
                    best_match_score = max(best_match_score, similarity)

            total_score += best_match_score

        if total_score > 0:
            matches.append({
                "item_id": item.get("item_id"),
                "score": total_score,
                "item_object": item.get("item_object"),
                "tiebreaker": item.get("tiebreaker", 0),
            })

    # 排序：分數 (高到低)，同分再比 tiebreaker (高到低)
    matches.sort(key=lambda x: (x["score"], x["tiebreaker"]), reverse=True)

    return matches
