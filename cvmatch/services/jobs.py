from typing import Any, Dict, List, Optional, Tuple

from cvmatch.models.response import Pagination
from cvmatch.models.schemas import JobCreate, JobPosting, JobUpdate
from cvmatch.utils.exceptions import NotFoundError, ValidationError
from cvmatch.utils.logging_config import get_logger

logger = get_logger(__name__)

SAMPLE_JOBS: List[Dict[str, Any]] = [
    {
        "title": "Frontend Developer",
        "company": "TechSolutions Inc.",
        "description": "We are looking for a skilled Frontend Developer to join our team. The ideal candidate "
                       "should have strong experience with React and modern JavaScript.",
        "requirements": [
            "Proficient in React, JavaScript, HTML5, and CSS3",
            "Experience with state management libraries (Redux, Context API)",
            "Knowledge of responsive design and cross-browser compatibility",
            "Understanding of RESTful APIs and AJAX",
            "Familiarity with version control systems (Git)",
        ],
        "skills": ["React", "JavaScript", "TypeScript", "HTML5", "CSS3", "Redux", "Git", "Responsive Design"],
        "responsibilities": [
            "Develop user-facing features using React.js",
            "Build reusable components and libraries for future use",
            "Translate designs and wireframes into high-quality code",
            "Optimize components for maximum performance",
            "Collaborate with backend developers for RESTful API integration",
        ],
        "location": "San Francisco, CA (Remote available)",
        "salary": {"min": 90000, "max": 120000, "currency": "USD"},
        "job_type": "Full-time",
        "industry": "Technology",
        "experience_level": "Mid-level",
        "education_level": "Bachelor",
    },
    {
        "title": "Backend Engineer",
        "company": "Data Systems Corp",
        "description": "Data Systems Corp is seeking a talented Backend Engineer to develop robust server-side "
                       "applications. The ideal candidate will have strong experience with Node.js and database systems.",
        "requirements": [
            "Strong proficiency in Node.js and Express",
            "Experience with MongoDB and SQL databases",
            "Knowledge of RESTful API design principles",
            "Understanding of server-side templating languages",
            "Experience with cloud services (AWS, Azure, or GCP)",
        ],
        "skills": ["Node.js", "Express", "MongoDB", "PostgreSQL", "AWS", "Docker", "RESTful API", "Git"],
        "responsibilities": [
            "Design and implement server-side applications",
            "Develop and maintain database schemas",
            "Create and optimize API endpoints",
            "Implement authentication and authorization",
            "Deploy and monitor applications in cloud environments",
        ],
        "location": "Austin, TX",
        "salary": {"min": 95000, "max": 130000, "currency": "USD"},
        "job_type": "Full-time",
        "industry": "Technology",
        "experience_level": "Mid-level",
        "education_level": "Bachelor",
    },
    {
        "title": "Full Stack Developer",
        "company": "WebApp Innovations",
        "description": "WebApp Innovations is looking for a Full Stack Developer to work on exciting web "
                       "applications. You will be responsible for both frontend and backend development.",
        "requirements": [
            "Experience with MERN or MEAN stack",
            "Proficiency in JavaScript/TypeScript",
            "Knowledge of frontend frameworks (React, Angular, or Vue)",
            "Familiarity with Node.js and Express",
            "Understanding of database systems (MongoDB, MySQL)",
        ],
        "skills": ["React", "Node.js", "JavaScript", "TypeScript", "MongoDB", "Express", "CSS3", "HTML5", "Git"],
        "responsibilities": [
            "Develop both frontend and backend components",
            "Work with designers to implement UI/UX features",
            "Optimize applications for performance and scalability",
            "Implement responsive design principles",
            "Collaborate with team members on code reviews and architecture decisions",
        ],
        "location": "Remote",
        "salary": {"min": 100000, "max": 140000, "currency": "USD"},
        "job_type": "Full-time",
        "industry": "Technology",
        "experience_level": "Mid-level",
        "education_level": "Bachelor",
    },
    {
        "title": "Data Scientist",
        "company": "Analytics Pro",
        "description": "Analytics Pro is seeking a Data Scientist to join our growing team. You will analyze "
                       "complex datasets and build predictive models to solve business problems.",
        "requirements": [
            "Strong background in statistics and mathematics",
            "Proficiency in Python and data analysis libraries",
            "Experience with machine learning frameworks",
            "Knowledge of data visualization techniques",
            "Familiarity with SQL and NoSQL databases",
        ],
        "skills": ["Python", "R", "SQL", "Machine Learning", "TensorFlow", "PyTorch", "Data Visualization", "Statistics"],
        "responsibilities": [
            "Collect and analyze large datasets",
            "Build and deploy machine learning models",
            "Communicate findings to non-technical stakeholders",
            "Collaborate with engineers to implement models in production",
            "Stay current with latest research and techniques",
        ],
        "location": "Boston, MA",
        "salary": {"min": 110000, "max": 150000, "currency": "USD"},
        "job_type": "Full-time",
        "industry": "Data Science",
        "experience_level": "Senior",
        "education_level": "Master",
    },
    {
        "title": "UX/UI Designer",
        "company": "Creative Digital Agency",
        "description": "Creative Digital Agency is looking for a talented UX/UI Designer to create beautiful, "
                       "functional designs for web and mobile applications.",
        "requirements": [
            "Strong portfolio demonstrating UX/UI design skills",
            "Proficiency with design tools (Figma, Sketch, Adobe XD)",
            "Understanding of user-centered design principles",
            "Knowledge of HTML, CSS, and responsive design",
            "Experience conducting user research and usability testing",
        ],
        "skills": ["Figma", "Sketch", "Adobe XD", "Wireframing", "Prototyping", "User Research", "HTML/CSS"],
        "responsibilities": [
            "Create wireframes, prototypes, and high-fidelity designs",
            "Conduct user research and usability testing",
            "Collaborate with developers to implement designs",
            "Maintain design systems and style guides",
            "Stay current with latest design trends and best practices",
        ],
        "location": "New York, NY",
        "salary": {"min": 85000, "max": 115000, "currency": "USD"},
        "job_type": "Full-time",
        "industry": "Design",
        "experience_level": "Mid-level",
        "education_level": "Bachelor",
    },
]


class JobService:
    """Job postings. Deleting a job deactivates it; it is never removed."""

    def __init__(self, jobs):
        self.jobs = jobs

    async def create(self, data: JobCreate) -> JobPosting:
        job = JobPosting(**data.model_dump())
        await self.jobs.insert(job)
        logger.info(f"Created job {job.job_id}: {job.title} at {job.company}")
        return job

    async def get(self, job_id: str) -> JobPosting:
        job = await self.jobs.get(job_id)
        if job is None or not job.active:
            raise NotFoundError(f"Job not found: {job_id}", resource="job", resource_id=job_id)
        return job

    async def list(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Tuple[List[JobPosting], Pagination]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive", field="page" if page < 1 else "limit")
        total = await self.jobs.count_active(search)
        items = await self.jobs.list_active(search=search, skip=(page - 1) * limit, limit=limit)
        return items, Pagination.build(total, page, limit)

    async def update(self, job_id: str, data: JobUpdate) -> JobPosting:
        fields = data.model_dump(exclude_unset=True)
        for required in ("title", "company", "description"):
            if required in fields and not (fields[required] or "").strip():
                raise ValidationError(f"{required} cannot be empty", field=required)
        job = await self.jobs.update(job_id, fields)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}", resource="job", resource_id=job_id)
        # updated_at moved forward, so cached matches for this job are now stale
        logger.info(f"Updated job {job_id}: {sorted(fields)}")
        return job

    async def delete(self, job_id: str) -> None:
        if not await self.jobs.soft_delete(job_id):
            raise NotFoundError(f"Job not found: {job_id}", resource="job", resource_id=job_id)
        logger.info(f"Deactivated job {job_id}")

    async def seed(self, clear_existing: bool = False) -> Dict[str, Any]:
        logger.info("Starting job seeding process")
        existing = await self.jobs.count()
        deleted = await self.jobs.delete_all() if clear_existing else 0
        if deleted:
            logger.info(f"Cleared {deleted} existing job(s)")

        jobs = [JobPosting(**JobCreate(**data).model_dump()) for data in SAMPLE_JOBS]
        inserted = await self.jobs.insert_many(jobs)
        logger.info(f"Job seeding completed: inserted={inserted}, existing={existing}, deleted={deleted}")
        return {
            "existing_count": existing,
            "deleted_count": deleted,
            "inserted_count": inserted,
            "inserted_jobs": [j.summary_view() for j in jobs],
        }
