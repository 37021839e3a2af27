"""
Fallback plan used whenever generation fails or returns an unusable shape.

Hand-authored; only the goal text is substituted.
"""

from ambitionly.core.schemas import GeneratedPlan


def _task(title: str, description: str, estimated_time: str) -> dict:
    return {"title": title, "description": description, "estimatedTime": estimated_time}


def fallback_plan(goal: str) -> GeneratedPlan:
    g = (goal or "").strip() or "Goal"
    return GeneratedPlan.model_validate({
        "phases": [
            {
                "title": "Foundation Phase",
                "description": "Set up tracking and get quick wins to build momentum",
                "milestones": [
                    {
                        "title": "Quick Setup",
                        "description": "Create tracking infrastructure and get immediate clarity",
                        "tasks": [
                            _task(
                                "Create progress tracking document",
                                f'Create a doc titled "{g} - Progress Tracker" with sections for weekly wins, challenges, and next steps',
                                "8 min",
                            ),
                            _task(
                                "Send alignment message to manager",
                                "Message your manager asking for 20 minutes this week to agree on success criteria for your goal",
                                "5 min",
                            ),
                            _task(
                                "Define 3 success indicators",
                                "Write down 3 concrete evidence points that will prove progress (certificate, shipped project, feedback)",
                                "10 min",
                            ),
                        ],
                    },
                    {
                        "title": "Resources Setup",
                        "description": "Assemble the concrete tools and templates you will use",
                        "tasks": [
                            _task(
                                "Create a single roadmap doc",
                                f'Open a doc named "Roadmap - {g}" with sections: Phases, Milestones, Tasks, Evidence',
                                "12 min",
                            ),
                            _task(
                                "Pick one primary course or resource",
                                "Choose one course, paste its link into the doc and add the module list with target dates",
                                "15 min",
                            ),
                            _task(
                                "Request a shadow or mentor session",
                                "Message one experienced colleague asking for a 2-hour shadow session; propose two time windows",
                                "7 min",
                            ),
                        ],
                    },
                ],
            },
            {
                "title": "Skill and Exposure Phase",
                "description": "Build capability through consistent daily practice and visible artifacts",
                "milestones": [
                    {
                        "title": "Structured Learning",
                        "description": "Complete a concrete course module and capture takeaways",
                        "tasks": [
                            _task(
                                "Complete course modules 1-2",
                                "Finish two modules of the selected course and add 5 bullet takeaways to the doc",
                                "90 min",
                            ),
                            _task(
                                "Apply one tactic for real",
                                "Use one concept from the course in a real situation; note what changed before and after",
                                "45 min",
                            ),
                            _task(
                                "Share a learning recap",
                                "Post a short update with 3 insights and 1 open question; link the doc",
                                "20 min",
                            ),
                        ],
                    },
                    {
                        "title": "Shadow and Feedback",
                        "description": "Observe an expert and collect structured notes",
                        "tasks": [
                            _task(
                                "Shadow an expert for one session",
                                "Observe a full 2-3 hour block; log 5 process observations and 2 scripts they use",
                                "3 h",
                            ),
                            _task(
                                "Ask 3 targeted questions",
                                "Ask about their decision criteria, trade-offs and the top mistake to avoid; document the answers",
                                "20 min",
                            ),
                            _task(
                                "Draft an improved template",
                                "Create or refine one template or checklist you rely on and share it for feedback",
                                "60 min",
                            ),
                        ],
                    },
                ],
            },
            {
                "title": "Execution Phase",
                "description": "Ship measurable outputs through sustained daily effort",
                "milestones": [
                    {
                        "title": "Own a recurring responsibility",
                        "description": "Take ownership of a deliverable through consistent daily contributions",
                        "tasks": [
                            _task(
                                "Deliver this week's piece of work solo",
                                "Own the full cycle (prepare, execute, report) and collect feedback",
                                "2 h",
                            ),
                            _task(
                                "Publish a one-page summary",
                                "Share outcomes and metrics in a one-pager and ask for one improvement suggestion",
                                "45 min",
                            ),
                            _task(
                                "Schedule a calibration check-in",
                                "Book a 20-minute review to assess readiness against your success indicators; record next steps",
                                "20 min",
                            ),
                        ],
                    },
                ],
            },
        ],
    })
