
CV_SCHEMA_HINT = """{{
  "personalInfo": {{"name": "", "email": "", "phone": "", "location": "", "linkedin": "", "website": "", "summary": ""}},
  "education": [{{"institution": "", "degree": "", "field": "", "startDate": "", "endDate": "", "gpa": "", "description": ""}}],
  "experience": [{{"company": "", "position": "", "startDate": "", "endDate": "", "location": "", "description": "", "achievements": []}}],
  "skills": [{{"category": "", "skills": []}}],
  "certifications": [{{"name": "", "issuer": "", "date": "", "expires": false, "expirationDate": ""}}],
  "languages": [{{"language": "", "proficiency": ""}}],
  "projects": [{{"name": "", "description": "", "startDate": "", "endDate": "", "technologies": [], "url": ""}}],
  "publications": [{{"title": "", "publisher": "", "date": "", "authors": [], "url": ""}}],
  "awards": [{{"title": "", "issuer": "", "date": "", "description": ""}}],
  "references": [{{"name": "", "position": "", "company": "", "contact": "", "relationship": ""}}]
}}"""

_EXTRACT_RULES = """
- If a section is not present, return it as an empty array.
- Format dates as YYYY-MM-DD strings when possible; use "Present" for ongoing roles.
- Organize skills into categories (e.g. "Technical", "Programming", "Soft Skills").
- Include internships, part-time positions and every educational qualification.
- Only include an email that contains @ and a domain; otherwise use "".
"""

EXTRACT_TEXT_PROMPT = """You are a CV information extractor.
Return strict JSON with exactly this structure:
""" + CV_SCHEMA_HINT + _EXTRACT_RULES + """
CV TEXT:
{doc}
"""

EXTRACT_IMAGES_PROMPT = """You are a CV information extractor.
The attached images are the pages of one CV, in order. Read ALL pages.
Return strict JSON with exactly this structure:
""" + CV_SCHEMA_HINT.format() + _EXTRACT_RULES

MATCH_PROMPT = """You are a recruiter assistant. Evaluate how well the candidate matches the job.
Score each factor 0-100 with 2 decimal places: skills match, experience relevance,
education alignment and overall fit.
Return JSON:
{{"score": <0..100>,
  "details": {{"skills": {{"score": <0..100>, "analysis": "..."}},
              "experience": {{"score": <0..100>, "analysis": "..."}},
              "education": {{"score": <0..100>, "analysis": "..."}},
              "overall": {{"score": <0..100>, "analysis": "..."}}}},
  "recommendations": {{"skills": "...", "experience": "...", "education": "..."}}}}

CANDIDATE:
{candidate}

JOB:
{job}
"""

MATCH_BATCH_PROMPT = """You are a recruiter assistant. Evaluate how well the candidate matches EACH job below.
Use the full 0-100 range with 2 decimal places so that jobs get distinct scores.
Return JSON: {{"matches": [{{"jobId": "<id from the job>", "score": <0..100>,
  "details": {{"skills": {{"score": 0, "analysis": ""}}, "experience": {{"score": 0, "analysis": ""}},
              "education": {{"score": 0, "analysis": ""}}, "overall": {{"score": 0, "analysis": ""}}}},
  "recommendations": {{"skills": "...", "experience": "...", "education": "..."}}}}]}}

CANDIDATE:
{candidate}

JOBS:
{jobs}
"""

CHAT_SYSTEM_PROMPT = """You are an assistant specialized in CV analysis and job matching.
Use the available functions to find candidates, look up CV details and list job matches.

- search_cvs accepts natural language with filters such as "GPA above 3.5",
  "worked at <company>", "from <university>" and skill phrases.
- Present candidates as a short list with name, current role and 3-5 key skills.
- For job matches give the job title, company and score, and explain why they fit.
- If nothing matches, say so and suggest how to broaden the query.
"""

CHAT_CV_CONTEXT = """The user is asking about this CV:
{cv}
"""
