from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from api.dependencies import Components, get_components
from deep_research.jobs import SUBMIT_FAILED_NOTICE, ResearchHistory, ResearchModifiers, ResearchParameters

router = APIRouter(prefix="/jobs", tags=["jobs"])


class ModifiersIn(BaseModel):
    scope: str = ""
    overview_details: str = ""
    analytical_rigor: str = ""
    perspective: str = ""


class ResearchRequest(BaseModel):
    capability: str
    framework: str
    context: str = ""
    modifiers: ModifiersIn = Field(default_factory=ModifiersIn)

    def to_parameters(self) -> ResearchParameters:
        return ResearchParameters(
            capability=self.capability,
            framework=self.framework,
            context=self.context,
            modifiers=ResearchModifiers(
                scope=self.modifiers.scope,
                overview_details=self.modifiers.overview_details,
                analytical_rigor=self.modifiers.analytical_rigor,
                perspective=self.modifiers.perspective,
            ),
        )


@router.post("", status_code=202)
async def submit_research(body: ResearchRequest, components: Components = Depends(get_components)):
    try:
        parameters = body.to_parameters()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    job = await components.orchestrator.submit(parameters)
    if job is None:
        raise HTTPException(status_code=502, detail=SUBMIT_FAILED_NOTICE)
    return {"active_jobs": components.orchestrator.active_count, "start_time": job.start_time}


@router.get("/status")
def get_status(components: Components = Depends(get_components)):
    badge = components.badge
    return {
        "active_jobs": components.orchestrator.active_count,
        "visible": badge.visible,
        "label": badge.label,
    }


@router.get("/history")
def download_history(components: Components = Depends(get_components)):
    entries = components.history.entries()
    if not entries:
        raise HTTPException(status_code=404, detail="No research history to download")
    filename = ResearchHistory.download_filename()
    return Response(
        content=components.history.export_json(entries),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
