# marketplace/services/project_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from marketplace.models.project import ProjectStatus
from marketplace.schemas.project_schema import ProjectCreate
from marketplace.utils.recommender import calculate_match_scores, normalize_skills

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db):
        self.db = db

    async def create_project(self, data: ProjectCreate, client: Dict[str, Any]) -> Dict[str, Any]:
        deadline = data.deadline
        # 沒有時區的時間視為 UTC
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        if deadline <= datetime.now(timezone.utc):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="INVALID_REQUEST")

        project = await self.db.project.create(
            data={
                "client_id": client["id"],
                "title": data.title,
                "description": data.description,
                "category": data.category,
                "budget_min": data.budget_min,
                "budget_max": data.budget_max,
                "deadline": deadline,
                "status": ProjectStatus.open,
                "required_skills": data.required_skills,
            }
        )
        logger.info(f"Project {project['id']} created by {client['id']}")
        return project

    async def list_projects(
        self,
        category: Optional[str] = None,
        project_status: Optional[str] = None,
        min_budget: Optional[float] = None,
        skills: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        依條件篩選案件。

        - min_budget: 預算上限 >= min_budget
        - skills: 逗號分隔；只回傳需求技能有 (完全或模糊) 符合的案件，依匹配分數排序
        """
        where: Dict[str, Any] = {}
        if category:
            where["category"] = category
        if project_status:
            where["status"] = project_status
        if min_budget is not None:
            where["budget_max"] = {"gte": min_budget}

        projects = await self.db.project.find_many(where=where, order_by={"created_at": "desc"})

        skill_names = normalize_skills((skills or "").split(","))
        if not skill_names:
            return projects

        matches = calculate_match_scores(
            skill_names,
            [
                {
                    "item_id": project["id"],
                    "skill_names": normalize_skills(project["required_skills"]),
                    "item_object": project,
                    "tiebreaker": project["budget_max"],
                }
                for project in projects
            ],
        )
        logger.debug(f"Skill filter {sorted(skill_names)} matched {len(matches)}/{len(projects)} projects")
        return [match["item_object"] for match in matches]
