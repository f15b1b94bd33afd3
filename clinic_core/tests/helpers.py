# clinic_core/tests/helpers.py

def scoped(tenant_id, facility_id):
    return {
        "HTTP_X_TENANT_ID": str(tenant_id),
        "HTTP_X_FACILITY_ID": str(facility_id),
    }


def advance(visit, *stages, actor_user_id=None):
    """
    Walk a visit through `stages` with VisitService.transition; returns the latest row.
    """
    from clinic_core.visits.services import VisitService

    for stage in stages:
        visit = VisitService.transition(
            tenant_id=visit.tenant_id,
            facility_id=visit.facility_id,
            visit_id=visit.id,
            to_stage=stage,
            actor_user_id=actor_user_id,
        )
    return visit
